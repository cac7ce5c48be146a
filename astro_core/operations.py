"""
Graphene/BitShares operation type ids.

The gateway treats operation payloads as opaque; it only needs the numeric
id each named type is serialised under.  Virtual operations (produced by
the chain, never submitted) are excluded.
"""

from __future__ import annotations

from astro_core.errors import ValidationFailure

OPERATION_IDS: dict[str, int] = {
    "transfer": 0,
    "limit_order_create": 1,
    "limit_order_cancel": 2,
    "call_order_update": 3,
    "account_create": 5,
    "account_update": 6,
    "account_whitelist": 7,
    "account_upgrade": 8,
    "account_transfer": 9,
    "asset_create": 10,
    "asset_update": 11,
    "asset_update_bitasset": 12,
    "asset_update_feed_producers": 13,
    "asset_issue": 14,
    "asset_reserve": 15,
    "asset_fund_fee_pool": 16,
    "asset_settle": 17,
    "asset_global_settle": 18,
    "asset_publish_feed": 19,
    "witness_create": 20,
    "witness_update": 21,
    "proposal_create": 22,
    "proposal_update": 23,
    "proposal_delete": 24,
    "withdraw_permission_create": 25,
    "withdraw_permission_update": 26,
    "withdraw_permission_claim": 27,
    "withdraw_permission_delete": 28,
    "committee_member_create": 29,
    "committee_member_update": 30,
    "committee_member_update_global_parameters": 31,
    "vesting_balance_create": 32,
    "vesting_balance_withdraw": 33,
    "worker_create": 34,
    "custom": 35,
    "assert": 36,
    "balance_claim": 37,
    "override_transfer": 38,
    "transfer_to_blind": 39,
    "blind_transfer": 40,
    "transfer_from_blind": 41,
    "asset_claim_fees": 43,
    "bid_collateral": 45,
    "asset_claim_pool": 47,
    "asset_update_issuer": 48,
    "htlc_create": 49,
    "htlc_redeem": 50,
    "htlc_extend": 52,
    "custom_authority_create": 54,
    "custom_authority_update": 55,
    "custom_authority_delete": 56,
    "ticket_create": 57,
    "ticket_update": 58,
    "liquidity_pool_create": 59,
    "liquidity_pool_delete": 60,
    "liquidity_pool_deposit": 61,
    "liquidity_pool_withdraw": 62,
    "liquidity_pool_exchange": 63,
    "samet_fund_create": 64,
    "samet_fund_delete": 65,
    "samet_fund_update": 66,
    "samet_fund_borrow": 67,
    "samet_fund_repay": 68,
    "credit_offer_create": 69,
    "credit_offer_delete": 70,
    "credit_offer_update": 71,
    "credit_offer_accept": 72,
    "credit_deal_repay": 73,
    "liquidity_pool_update": 75,
    "credit_deal_update": 76,
    "limit_order_update": 77,
}


def operation_id(op_type: str) -> int:
    """Numeric id for a named operation type."""
    try:
        return OPERATION_IDS[op_type]
    except KeyError:
        raise ValidationFailure(f"Unknown operation type: {op_type}") from None
