"""Coupons domain - discounts and per-user usage ledger"""
