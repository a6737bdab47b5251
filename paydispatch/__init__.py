"""
paydispatch — routes chart-of-accounts entries to external payment providers
and normalises every provider outcome into a uniform PaymentResult.
"""

__version__ = "0.1.0"
