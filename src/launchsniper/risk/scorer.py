"""Safety scoring for freshly launched tokens.

This is a tunable heuristic, not a proof that a token is safe. It filters
out the obvious traps (known honeypots, repeat entries, thin pools) and
rewards launchpad guarantees such as disabled mint and freeze authority.

Hard fails return immediately:
    - token is blacklisted
    - we already hold an open position in it
    - token is a confirmed honeypot

Soft checks, one point each (max 4):
    - liquidity >= min_liquidity_sol   (mandatory)
    - honeypot check confirmed negative
    - mint authority disabled
    - freeze authority disabled

A candidate passes when liquidity passed AND score >= min_safety_score.
"""

from ..config import TradingConfig
from ..logging import get_logger
from ..models import Evaluation, SafetyCheck, TokenCandidate
from ..persistence import Database

log = get_logger("scorer")

MAX_SCORE = 4


class RiskScorer:
    """Scores candidates against the ledger and enrichment signals."""

    def __init__(self, config: TradingConfig, db: Database):
        self.config = config
        self.db = db
        self._log = log

    async def evaluate(self, candidate: TokenCandidate) -> Evaluation:
        asset_id = candidate.asset_id

        if await self.db.is_blacklisted(asset_id):
            return Evaluation(passed=False, reason="Token blacklisted")

        if await self.db.get_open_position(asset_id) is not None:
            return Evaluation(passed=False, reason="Already have position")

        if candidate.is_honeypot is True:
            return Evaluation(passed=False, reason="Honeypot detected")

        checks = [
            SafetyCheck(
                name="liquidity",
                passed=(candidate.liquidity_sol or 0.0) >= self.config.min_liquidity_sol,
                value=candidate.liquidity_sol,
            ),
            SafetyCheck(name="not_honeypot", passed=candidate.is_honeypot is False),
            SafetyCheck(name="mint_disabled", passed=candidate.mint_disabled is True),
            SafetyCheck(name="freeze_disabled", passed=candidate.freeze_disabled is True),
        ]
        score = sum(1 for c in checks if c.passed)

        if not checks[0].passed:
            evaluation = Evaluation(
                passed=False, score=score, reason="Insufficient liquidity", checks=checks
            )
        elif score < self.config.min_safety_score:
            evaluation = Evaluation(
                passed=False,
                score=score,
                reason=f"Low safety score ({score}/{MAX_SCORE})",
                checks=checks,
            )
        else:
            evaluation = Evaluation(passed=True, score=score, checks=checks)

        self._log.debug(
            "Candidate evaluated",
            asset_id=asset_id,
            symbol=candidate.symbol,
            score=score,
            passed=evaluation.passed,
            reason=evaluation.reason,
        )
        return evaluation
