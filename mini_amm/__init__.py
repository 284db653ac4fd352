"""
MiniAMM: a two-asset constant product liquidity pool.
"""
