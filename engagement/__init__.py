"""Buyer engagement module: carts, wishlists, likes and comments."""

from .cart import CartManager
from .wishlist import WishlistManager
from .likes import LikeManager
from .comments import CommentManager

# Create global instances
cart_manager = CartManager()
wishlist_manager = WishlistManager()
like_manager = LikeManager()
comment_manager = CommentManager()

__all__ = [
    'CartManager',
    'WishlistManager',
    'LikeManager',
    'CommentManager',
    'cart_manager',
    'wishlist_manager',
    'like_manager',
    'comment_manager'
]
