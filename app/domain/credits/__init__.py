"""Credits domain - prepaid balances, packages and sublet credits"""
