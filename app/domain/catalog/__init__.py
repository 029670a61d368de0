"""Catalog domain - rooms, products and the price table"""
