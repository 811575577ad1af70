from alitools.models.category import Category
from alitools.models.producer import Producer
from alitools.models.unit import Unit
from alitools.models.product import Product, ProductCategory
from alitools.models.variant import Variant, Stock
from alitools.models.price import Price
from alitools.models.media import Image, Document, ProductProperty
from alitools.models.sync_health import SyncHealth
from alitools.models.user import User, UserRole
from alitools.models.customer import Customer, Address
from alitools.models.cart import Cart, CartItem
from alitools.models.order import Order, OrderItem, OrderStatus, Shipment

__all__ = [
    "Category",
    "Producer",
    "Unit",
    "Product",
    "ProductCategory",
    "Variant",
    "Stock",
    "Price",
    "Image",
    "Document",
    "ProductProperty",
    "SyncHealth",
    "User",
    "UserRole",
    "Customer",
    "Address",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Shipment",
]
