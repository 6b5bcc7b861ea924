"""HTTP client tests using httpx.MockTransport.

Covers error classification, the transient retry policy and response
parsing for the quote and market-data clients.
"""

import httpx
import pytest

from launchsniper.client.jupiter import JupiterClient, Quote
from launchsniper.client.market_data import DexScreenerClient
from launchsniper.client.paper import PaperSwapClient, PaperWallet
from launchsniper.config import SOL_MINT
from launchsniper.models import Position, PositionStatus
from launchsniper.retry import (
    NetworkError,
    PermanentError,
    QuoteError,
    RateLimitError,
    ServiceUnavailableError,
    TransientError,
    classify_http_error,
    retry_transient,
)
from tests.fixtures.mock_wallet import MockWallet

MINT = "Mint1111111111111111111111111111111111111pump"


def mock_transport_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def status_error(status: int, headers=None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.invalid")
    response = httpx.Response(status, headers=headers, request=request)
    return httpx.HTTPStatusError("error", request=request, response=response)


class TestErrorClassification:

    def test_rate_limit(self):
        error = classify_http_error(status_error(429, {"retry-after": "3"}), "quote")
        assert isinstance(error, RateLimitError)
        assert error.retry_after == 3.0

    def test_server_error_is_transient(self):
        error = classify_http_error(status_error(503), "quote")
        assert isinstance(error, ServiceUnavailableError)
        assert isinstance(error, TransientError)

    def test_client_error_is_permanent(self):
        error = classify_http_error(status_error(400), "quote")
        assert isinstance(error, PermanentError)
        assert "HTTP 400" in str(error)

    def test_transport_error_is_network(self):
        request = httpx.Request("GET", "https://example.invalid")
        error = classify_http_error(httpx.ConnectError("refused", request=request), "quote")
        assert isinstance(error, NetworkError)


class TestRetryTransient:

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        calls = []

        @retry_transient(max_attempts=3, min_wait=0, max_wait=0)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise NetworkError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_does_not_retry_permanent(self):
        calls = []

        @retry_transient(max_attempts=3, min_wait=0, max_wait=0)
        async def rejected():
            calls.append(1)
            raise QuoteError("no route")

        with pytest.raises(QuoteError):
            await rejected()
        assert len(calls) == 1

    def test_rejects_sync_functions(self):
        with pytest.raises(TypeError):
            @retry_transient()
            def not_async():
                pass


class TestJupiterClient:

    @pytest.mark.asyncio
    async def test_quote_parses_response(self):
        def handler(request):
            assert request.url.path.endswith("/quote")
            assert request.url.params["slippageBps"] == "500"
            return httpx.Response(200, json={
                "inputMint": SOL_MINT,
                "outputMint": MINT,
                "inAmount": "100000000",
                "outAmount": "3500000000",
                "slippageBps": 500,
                "priceImpactPct": "0.01",
                "routePlan": [{"percent": 100}],
            })

        client = JupiterClient(base_url="https://quote.invalid/v6")
        client._client = mock_transport_client(handler)

        quote = await client.quote(SOL_MINT, MINT, 100_000_000, 500)

        assert quote.in_amount == 100_000_000
        assert quote.out_amount == 3_500_000_000
        assert quote.route == [{"percent": 100}]
        await client.close()

    @pytest.mark.asyncio
    async def test_quote_bad_request_is_quote_error(self):
        client = JupiterClient(base_url="https://quote.invalid/v6")
        client._client = mock_transport_client(
            lambda request: httpx.Response(400, json={"error": "No routes found"})
        )

        with pytest.raises(QuoteError):
            await client.quote(SOL_MINT, MINT, 1, 500)
        await client.close()

    def test_malformed_quote(self):
        with pytest.raises(QuoteError):
            Quote.from_api({"inputMint": SOL_MINT})


class TestDexScreenerClient:

    @pytest.mark.asyncio
    async def test_info_converts_liquidity_to_sol(self):
        def handler(request):
            return httpx.Response(200, json={"pairs": [{
                "baseToken": {"symbol": "CAT", "name": "Cat Coin"},
                "liquidity": {"usd": 2000},
                "priceUsd": "0.0001",
            }]})

        client = DexScreenerClient(base_url="https://dex.invalid/tokens")
        client._client = mock_transport_client(handler)

        info = await client.info(MINT)

        assert info.symbol == "CAT"
        assert info.liquidity_sol == pytest.approx(10.0)
        assert info.price_usd == pytest.approx(0.0001)
        await client.close()

    @pytest.mark.asyncio
    async def test_no_pairs_returns_none(self):
        client = DexScreenerClient(base_url="https://dex.invalid/tokens")
        client._client = mock_transport_client(lambda request: httpx.Response(200, json={"pairs": None}))

        assert await client.info(MINT) is None
        await client.close()

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self):
        client = DexScreenerClient(base_url="https://dex.invalid/tokens")
        client._client = mock_transport_client(lambda request: httpx.Response(404))

        assert await client.info(MINT) is None
        await client.close()


class TestPaperTrading:
    """Dry-run swaps never hit the chain but keep holdings consistent."""

    @pytest.mark.asyncio
    async def test_paper_fill_round_trip(self):
        wallet = PaperWallet(MockWallet())
        quotes = JupiterClient(base_url="https://quote.invalid/v6")
        paper = PaperSwapClient(quotes, wallet)

        buy = Quote(SOL_MINT, MINT, 100_000_000, 3_000_000, 500)
        tx_ref = await paper.submit(buy, wallet)
        assert tx_ref.startswith("paper-")
        assert await wallet.token_balance(MINT) == 0

        await paper.confirm(tx_ref)
        assert await wallet.token_balance(MINT) == 3_000_000

        sell = Quote(MINT, SOL_MINT, 3_000_000, 90_000_000, 500)
        await paper.confirm(await paper.submit(sell, wallet))
        assert await wallet.token_balance(MINT) == 0

        await paper.close()

    @pytest.mark.asyncio
    async def test_paper_fills_move_sol_balance(self):
        wallet = PaperWallet(MockWallet(balance_sol=1.0))

        wallet.apply_fill(Quote(SOL_MINT, MINT, 100_000_000, 3_000_000, 500))
        assert await wallet.balance() == pytest.approx(0.9)

        wallet.apply_fill(Quote(MINT, SOL_MINT, 3_000_000, 150_000_000, 500))
        assert await wallet.balance() == pytest.approx(1.05)

    @pytest.mark.asyncio
    async def test_restore_from_open_positions(self):
        wallet = PaperWallet(MockWallet(balance_sol=1.0))
        position = Position(
            id=1,
            asset_id=MINT,
            entry_price=0.0001,
            amount_tokens=1000.0,
            amount_sol_spent=0.1,
            status=PositionStatus.OPEN,
        )

        wallet.restore([position], token_decimals=6)

        assert await wallet.token_balance(MINT) == 1_000_000_000
        assert await wallet.balance() == pytest.approx(0.9)
