"""HTTP client for the marketplace API.

One method per server operation. Error responses are mapped back onto the
marketplace error taxonomy, and every successful result is merged into the
client's ViewStore. No call is retried; a TransientError is left for the
caller to handle.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic_core import to_jsonable_python

from errors import (
    MarketplaceError, ConstraintViolation, StepError, TransientError, ERROR_KINDS
)
from .store import ViewStore, Ticket

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10

class SessionError(MarketplaceError):
    """Raised when the request has no valid session."""
    kind = "unauthenticated"
    status_code = 401
    message = "Authentication required"

def error_from_body(status_code: int, body: Any) -> MarketplaceError:
    """Rebuild a marketplace error from an API error response body."""
    if not isinstance(body, dict):
        body = {}
    kind = body.get('error')
    detail = body.get('detail')
    if not isinstance(detail, str):
        detail = None

    if kind == StepError.kind and isinstance(body.get('cause'), dict):
        cause = error_from_body(status_code, body['cause'])
        return StepError(body.get('step', 'unknown'), cause)

    if kind == ConstraintViolation.kind or status_code == 422:
        return ConstraintViolation(
            detail,
            field=body.get('field'),
            value=body.get('value'),
            constraint=body.get('constraint')
        )

    if kind in ERROR_KINDS:
        return ERROR_KINDS[kind](detail)

    if status_code == 401:
        return SessionError(detail)

    for cls in ERROR_KINDS.values():
        if cls.status_code == status_code:
            return cls(detail)

    error = MarketplaceError(detail or f"HTTP {status_code}")
    error.status_code = status_code
    return error

class MarketplaceClient:
    """Marketplace API client with a local view store."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        store: Optional[ViewStore] = None,
        timeout: float = DEFAULT_TIMEOUT
    ):
        """Initialize client.

        Args:
            base_url: API root URL
            token: Optional session token from a previous sign-in
            session: Optional requests session to send requests with
            store: Optional view store to merge results into
            timeout: Seconds before a request is abandoned
        """
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.store = store or ViewStore()
        self.timeout = timeout
        self.user_id: Optional[str] = None
        if token:
            self._set_token(token)

    def _set_token(self, token: Optional[str]) -> None:
        if token:
            self.session.headers['Authorization'] = f"Bearer {token}"
        else:
            self.session.headers.pop('Authorization', None)

    def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        files: Any = None,
        raw: bool = False
    ) -> Any:
        """Send a request and decode the response.

        Raises:
            TransientError: On timeouts and connection failures
            MarketplaceError: The error described by an error response
        """
        url = f"{self.base_url}{path}"
        if params:
            params = {k: str(v) for k, v in params.items() if v is not None}

        try:
            response = self.session.request(
                method,
                url,
                json=to_jsonable_python(json) if json is not None else None,
                params=params or None,
                files=files,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise TransientError(f"Request timed out after {self.timeout} seconds") from e
        except requests.exceptions.ConnectionError as e:
            raise TransientError(f"Failed to connect to {self.base_url}") from e
        except requests.exceptions.RequestException as e:
            raise TransientError(f"Request failed: {str(e)}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {'detail': response.text}
            error = error_from_body(response.status_code, body)
            logger.debug(f"{method} {path} -> {response.status_code}: {error}")
            raise error

        if raw:
            return response.content
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MarketplaceError(f"Invalid response format: {str(e)}") from e

    def _fetch_all(self, collection: str, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """GET a list and replace a collection with it, unless superseded."""
        ticket: Ticket = self.store.begin(collection)
        rows = self._request('GET', path, params=params)
        self.store.replace(collection, rows, ticket=ticket)
        return rows

    # Authentication

    def sign_up(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        role: str = 'buyer',
        store_name: Optional[str] = None
    ) -> Dict[str, Any]:
        session = self._request('POST', '/auth/signup', json={
            'email': email,
            'password': password,
            'full_name': full_name,
            'role': role,
            'store_name': store_name
        })
        self._start_session(session)
        return session

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        session = self._request('POST', '/auth/login', json={'email': email, 'password': password})
        self._start_session(session)
        return session

    def sign_out(self) -> None:
        """Revoke the session and drop all local state."""
        try:
            self._request('POST', '/auth/logout')
        finally:
            self._set_token(None)
            self.user_id = None
            self.store.detach()
            self.store.clear()

    def _start_session(self, session: Dict[str, Any]) -> None:
        self.store.detach()
        self.store.clear()
        self._set_token(session['token'])
        self.user_id = session['user_id']

    # Profiles and stores

    def get_profile(self) -> Dict[str, Any]:
        ticket = self.store.begin('profiles')
        profile = self._request('GET', '/profile')
        self.store.upsert('profiles', profile, ticket=ticket)
        self.user_id = self.user_id or str(profile['id'])
        return profile

    def update_profile(self, **changes) -> Dict[str, Any]:
        profile = self._request('PATCH', '/profile', json=changes)
        self.store.upsert('profiles', profile)
        return profile

    def become_seller(self, store_name: str, **store) -> Dict[str, Any]:
        profile = self._request('POST', '/profile/seller', json={'store_name': store_name, **store})
        self.store.upsert('profiles', profile)
        self.store.upsert('sellers', profile['capability']['seller'])
        return profile

    def update_seller(self, **changes) -> Dict[str, Any]:
        seller = self._request('PATCH', '/profile/seller', json=changes)
        self.store.upsert('sellers', seller)
        return seller

    def back_to_buyer(self) -> Dict[str, Any]:
        profile = self._request('DELETE', '/profile/seller')
        self.store.upsert('profiles', profile)
        self.store.remove('sellers', profile['id'])
        return profile

    def get_seller(self, user_id: str) -> Dict[str, Any]:
        seller = self._request('GET', f'/sellers/{user_id}')
        self.store.upsert('sellers', seller)
        return seller

    def list_sellers(self, verified_only: bool = False, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        return self._fetch_all('sellers', '/sellers', {
            'verified_only': str(verified_only).lower(),
            'limit': limit,
            'offset': offset
        })

    # Products

    def list_products(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        return self._fetch_all('products', '/products', {
            'category': category,
            'search': search,
            'limit': limit,
            'offset': offset
        })

    def list_seller_products(self, seller_id: str) -> List[Dict[str, Any]]:
        return self._fetch_all('seller_products', f'/sellers/{seller_id}/products')

    def get_product(self, product_id: str) -> Dict[str, Any]:
        product = self._request('GET', f'/products/{product_id}')
        self.store.upsert('products', product)
        return product

    def create_product(self, **product) -> Dict[str, Any]:
        created = self._request('POST', '/products', json=product)
        self.store.upsert('products', created)
        self.store.upsert('seller_products', created)
        return created

    def update_product(self, product_id: str, **changes) -> Dict[str, Any]:
        product = self._request('PATCH', f'/products/{product_id}', json=changes)
        self.store.upsert('products', product)
        self.store.upsert('seller_products', product)
        return product

    def delete_product(self, product_id: str) -> None:
        self._request('DELETE', f'/products/{product_id}')
        self.store.remove('products', product_id)
        self.store.remove('seller_products', product_id)
        self.store.remove('cart', product_id)

    # Likes and comments

    def get_likes(self, product_id: str) -> Dict[str, Any]:
        status = self._request('GET', f'/products/{product_id}/likes')
        self.store.upsert('likes', status)
        return status

    def toggle_like(self, product_id: str) -> Dict[str, Any]:
        status = self._request('POST', f'/products/{product_id}/likes')
        self.store.upsert('likes', status)
        return status

    def list_comments(self, product_id: str) -> List[Dict[str, Any]]:
        return self._fetch_all(f'comments:{product_id}', f'/products/{product_id}/comments')

    def add_comment(self, product_id: str, comment: str) -> Dict[str, Any]:
        created = self._request('POST', f'/products/{product_id}/comments', json={'comment': comment})
        self.store.upsert(f'comments:{product_id}', created)
        return created

    def update_comment(self, product_id: str, comment_id: str, comment: str) -> Dict[str, Any]:
        updated = self._request(
            'PATCH', f'/products/{product_id}/comments/{comment_id}', json={'comment': comment}
        )
        self.store.upsert(f'comments:{product_id}', updated)
        return updated

    # Orders

    def list_orders(self, as_role: Optional[str] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._fetch_all('orders', '/orders', {'as_role': as_role, 'status': status})

    def get_order(self, order_id: str) -> Dict[str, Any]:
        order = self._request('GET', f'/orders/{order_id}')
        self.store.upsert('orders', order)
        return order

    def create_order(self, items: List[Dict[str, Any]], shipping_address: Any = None) -> List[Dict[str, Any]]:
        orders = self._request('POST', '/orders', json={
            'items': items,
            'shipping_address': shipping_address
        })
        for order in orders:
            self.store.upsert('orders', order)
        return orders

    def checkout(self, shipping_address: Any = None) -> List[Dict[str, Any]]:
        """Order everything in the cart; the cart is emptied on success."""
        orders = self._request('POST', '/orders/checkout', json={'shipping_address': shipping_address})
        for order in orders:
            self.store.upsert('orders', order)
        self.store.clear('cart')
        return orders

    def update_order_status(self, order_id: str, status: str) -> Dict[str, Any]:
        order = self._request('PATCH', f'/orders/{order_id}/status', json={'status': status})
        self.store.upsert('orders', order)
        return order

    # Cart

    def list_cart(self) -> List[Dict[str, Any]]:
        return self._fetch_all('cart', '/cart')

    def add_to_cart(self, product_id: str, quantity: int = 1) -> Dict[str, Any]:
        item = self._request('POST', '/cart', json={'product_id': product_id, 'quantity': quantity})
        self.store.upsert('cart', item)
        return item

    def update_cart_quantity(self, product_id: str, quantity: int) -> Optional[Dict[str, Any]]:
        item = self._request('PATCH', f'/cart/{product_id}', json={'quantity': quantity})
        if item is None:
            self.store.remove('cart', product_id)
        else:
            self.store.upsert('cart', item)
        return item

    def remove_from_cart(self, product_id: str) -> bool:
        result = self._request('DELETE', f'/cart/{product_id}')
        self.store.remove('cart', product_id)
        return result['removed']

    def clear_cart(self) -> int:
        result = self._request('DELETE', '/cart')
        self.store.clear('cart')
        return result['removed']

    # Wishlist

    def list_wishlist(self) -> List[Dict[str, Any]]:
        return self._fetch_all('wishlist', '/wishlist')

    def toggle_wishlist(self, product_id: str) -> Dict[str, Any]:
        result = self._request('POST', f'/wishlist/{product_id}')
        if result['wishlisted']:
            self.store.upsert('wishlist', {'product_id': result['product_id']})
        else:
            self.store.remove('wishlist', result['product_id'])
        self._sync_profile_wishlist(str(result['product_id']), result['wishlisted'])
        return result

    def _sync_profile_wishlist(self, product_id: str, wishlisted: bool) -> None:
        """Mirror a toggle into the cached profile's wishlist array."""
        profile = self.store.get('profiles', self.user_id) if self.user_id else None
        if profile is None:
            return
        wishlist = [p for p in profile.get('wishlist') or [] if str(p).lower() != product_id.lower()]
        if wishlisted:
            wishlist.append(product_id)
        self.store.patch('profiles', self.user_id, {'wishlist': wishlist})

    # Messages

    def list_messages(self, unread_only: bool = False, product_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._fetch_all('messages', '/messages', {
            'unread_only': str(unread_only).lower(),
            'product_id': product_id
        })

    def list_thread(self, message_id: str) -> List[Dict[str, Any]]:
        return self._fetch_all(f'thread:{message_id}', f'/messages/{message_id}/thread')

    def send_message(
        self,
        to_user_id: str,
        message: str,
        product_id: Optional[str] = None,
        parent_id: Optional[str] = None
    ) -> Dict[str, Any]:
        sent = self._request('POST', '/messages', json={
            'to_user_id': to_user_id,
            'message': message,
            'product_id': product_id,
            'parent_id': parent_id
        })
        self.store.upsert('messages', sent)
        return sent

    def mark_as_read(self, message_id: str) -> Dict[str, Any]:
        message = self._request('POST', f'/messages/{message_id}/read')
        self.store.upsert('messages', message)
        return message

    def unread_count(self) -> int:
        return self._request('GET', '/messages/unread-count')['unread']

    # Avatars

    def upload_avatar(self, filename: str, content: bytes, content_type: str) -> Dict[str, Any]:
        stored = self._request(
            'PUT',
            f'/storage/avatars/{filename}',
            files={'file': (filename, content, content_type)}
        )
        self.store.upsert('avatars', stored)
        return stored

    def download_avatar(self, name: str) -> bytes:
        return self._request('GET', f'/storage/avatars/{name}', raw=True)

    def delete_avatar(self, name: str) -> None:
        self._request('DELETE', f'/storage/avatars/{name}')
        for stored in self.store.all('avatars'):
            if stored.get('name') == name:
                self.store.remove('avatars', stored['id'])

    def avatar_url(self, name: str) -> str:
        return f"{self.base_url}/storage/avatars/{name}"

# Export public interface
__all__ = [
    'MarketplaceClient',
    'ViewStore',
    'Ticket',
    'SessionError',
    'error_from_body'
]
