"""Analytics computations built on the chain adapters"""
