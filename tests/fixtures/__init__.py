"""Test doubles for the launch sniper's external collaborators."""

ASSET_A = "AssetAAAA1111111111111111111111111111111pump"
ASSET_B = "AssetBBBB2222222222222222222222222222222pump"
ASSET_C = "AssetCCCC3333333333333333333333333333333pump"
