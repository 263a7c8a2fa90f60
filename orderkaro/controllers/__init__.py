from orderkaro.controllers.addresses import AddressController
from orderkaro.controllers.cart import CartController
from orderkaro.controllers.orders import OrderController
from orderkaro.controllers.products import ProductController
from orderkaro.controllers.profile import ProfileController

__all__ = [
    "AddressController",
    "CartController",
    "OrderController",
    "ProductController",
    "ProfileController",
]
