"""
Staking - operator reads, stake transactions and allocation passes.
"""
