"""Pydantic models shared by the API, the managers and the client."""

from .blobs import (
    PaymentInfo, PaymentInfoV1, ShippingAddress, ShippingAddressV1,
    parse_payment_info, parse_shipping_address
)
from .profiles import (
    Role, Seller, BuyerCapability, SellerCapability, Capability, Profile,
    ProfileUpdate, SellerCreate, SellerUpdate
)
from .products import Money, Product, ProductCreate, ProductUpdate
from .orders import (
    OrderStatus, Order, OrderItem, OrderCreate, CheckoutRequest, OrderStatusUpdate
)
from .messages import MessageType, Message, MessageCreate, UnreadCount
from .engagement import (
    CartItem, CartItemAdd, CartItemUpdate, WishlistEntry, WishlistToggle,
    LikeStatus, Comment, CommentCreate, CommentUpdate
)
from .storage import StorageObject
from .auth import SignUpRequest, SignInRequest, SessionResponse

__all__ = [
    'PaymentInfo',
    'PaymentInfoV1',
    'ShippingAddress',
    'ShippingAddressV1',
    'parse_payment_info',
    'parse_shipping_address',
    'Role',
    'Seller',
    'BuyerCapability',
    'SellerCapability',
    'Capability',
    'Profile',
    'ProfileUpdate',
    'SellerCreate',
    'SellerUpdate',
    'Money',
    'Product',
    'ProductCreate',
    'ProductUpdate',
    'OrderStatus',
    'Order',
    'OrderItem',
    'OrderCreate',
    'CheckoutRequest',
    'OrderStatusUpdate',
    'MessageType',
    'Message',
    'MessageCreate',
    'UnreadCount',
    'CartItem',
    'CartItemAdd',
    'CartItemUpdate',
    'WishlistEntry',
    'WishlistToggle',
    'LikeStatus',
    'Comment',
    'CommentCreate',
    'CommentUpdate',
    'StorageObject',
    'SignUpRequest',
    'SignInRequest',
    'SessionResponse'
]
