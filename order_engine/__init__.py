"""
订单定价与履约引擎
"""

__version__ = "1.0.0"
