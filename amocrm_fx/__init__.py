"""amoCRM deal price recalculation from CBR exchange rates."""

__version__ = "1.0.0"
