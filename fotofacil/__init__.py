"""FotoFácil storefront core: cart, coupons, checkout, payment polling and delivery."""

__version__ = "0.1.0"
