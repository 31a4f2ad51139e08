"""Profile management module.

This module handles:
- Reading and updating the caller's own profile
- Seller store details, readable by anyone
- Role transitions between buyer and seller, each one transaction
"""

import logging
from typing import Dict, Any, List, Optional

import asyncpg
from pydantic import ValidationError

from database import translate_db_error
from database.manager import BaseManager, record, records, set_clause, check_fields
from errors import ConstraintViolation, MarketplaceError, StepError
from models import parse_payment_info

logger = logging.getLogger(__name__)

# Fields callers may update on their own profile
PROFILE_MUTABLE_FIELDS = {
    'full_name',
    'phone',
    'profile_image',
    'bio'
}

# Fields sellers may update on their own store
SELLER_MUTABLE_FIELDS = {
    'store_name',
    'store_description',
    'store_address',
    'payment_info'
}

def _seller_view(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    row = dict(row)
    row['payment_info'] = parse_payment_info(row.get('payment_info'))
    return row

def _profile_view(profile: Dict[str, Any], seller: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Attach the buyer/seller capability to a profile row."""
    profile = dict(profile)
    profile.setdefault('wishlist', [])
    if seller is not None:
        profile['capability'] = {'role': 'seller', 'seller': _seller_view(seller)}
    else:
        if profile.get('role') == 'seller':
            logger.warning(f"Profile {profile['id']} has role seller but no store")
        profile['capability'] = {'role': 'buyer'}
    return profile

class ProfileManager(BaseManager):
    """Manages profiles and seller stores."""

    table = 'profiles'

    async def get_profile(self, caller_id: str) -> Dict[str, Any]:
        """Get the caller's profile with its capability.

        Args:
            caller_id: Authenticated caller

        Returns:
            Profile dict with a `capability` entry

        Raises:
            NotFoundError: If the caller has no profile
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            profile = await self.fetch_visible(
                conn, 'SELECT * FROM profiles WHERE id = $1', caller_id
            )
            seller = await conn.fetchrow(
                'SELECT * FROM sellers WHERE user_id = $1', caller_id
            )

        return _profile_view(profile, record(seller))

    async def update_profile(self, caller_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Update mutable fields on the caller's profile.

        Args:
            caller_id: Authenticated caller
            changes: Field values to set

        Returns:
            The updated profile

        Raises:
            ConstraintViolation: If a field is not updatable or a value is invalid
            NotFoundError: If the caller has no profile
        """
        fields, values = check_fields(changes, PROFILE_MUTABLE_FIELDS)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM profiles WHERE id = $1', caller_id
            )
            self.authorize_update(caller_id, current, changes)

            profile = await conn.fetchrow(
                f'''
                UPDATE profiles
                SET {set_clause(fields, start=2)}
                WHERE id = $1
                RETURNING *
                ''',
                caller_id,
                *values
            )
            seller = await conn.fetchrow(
                'SELECT * FROM sellers WHERE user_id = $1', caller_id
            )

        logger.info(f"Updated profile {caller_id}: {', '.join(fields)}")
        return _profile_view(dict(profile), record(seller))

    async def get_seller(self, caller_id: Optional[str], user_id: str) -> Dict[str, Any]:
        """Get a seller's store details.

        Raises:
            NotFoundError: If the user has no store
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            seller = await self.fetch_visible(
                conn, 'SELECT * FROM sellers WHERE user_id = $1', user_id,
                table='sellers'
            )
        return _seller_view(seller)

    async def list_sellers(
        self,
        caller_id: Optional[str],
        verified_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """List seller stores, newest first."""
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            rows = await conn.fetch(
                '''
                SELECT * FROM sellers
                WHERE ($1::boolean IS FALSE OR is_verified)
                ORDER BY created_at DESC
                LIMIT $2 OFFSET $3
                ''',
                verified_only,
                limit,
                offset
            )
        return [_seller_view(row) for row in records(rows)]

    async def update_seller(self, caller_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Update the caller's own store.

        Raises:
            ConstraintViolation: If a field is not updatable or a value is invalid
            NotFoundError: If the caller has no store
        """
        fields, values = check_fields(changes, SELLER_MUTABLE_FIELDS)
        if 'payment_info' in changes:
            values[fields.index('payment_info')] = _payment_blob(changes['payment_info']) or {}
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM sellers WHERE user_id = $1', caller_id,
                table='sellers'
            )
            self.authorize_update(caller_id, current, changes, table='sellers')

            seller = await conn.fetchrow(
                f'''
                UPDATE sellers
                SET {set_clause(fields, start=2)}
                WHERE user_id = $1
                RETURNING *
                ''',
                caller_id,
                *values
            )

        logger.info(f"Updated store of {caller_id}: {', '.join(fields)}")
        return _seller_view(dict(seller))

    async def become_seller(self, caller_id: str, store: Dict[str, Any]) -> Dict[str, Any]:
        """Switch the caller to the seller role and create their store.

        Both steps run in one transaction: a failure in either leaves the
        profile untouched.

        Args:
            caller_id: Authenticated caller
            store: store_name and optional store_description, store_address, payment_info

        Returns:
            The updated profile with a seller capability

        Raises:
            ConstraintViolation: If the caller is already a seller
            StepError: If a step fails; `step` is 'update_role' or 'create_seller'
        """
        await self.ensure_pool()

        row = {
            'user_id': caller_id,
            'store_name': store.get('store_name'),
            'store_description': store.get('store_description'),
            'store_address': store.get('store_address'),
            'payment_info': _payment_blob(store.get('payment_info')) or {}
        }

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM profiles WHERE id = $1', caller_id
            )
            if current['role'] == 'seller':
                raise ConstraintViolation(
                    "Profile is already a seller", field='role', value='seller'
                )

            step = 'update_role'
            try:
                self.authorize_update(caller_id, current, {'role': 'seller'})
                profile = await conn.fetchrow(
                    "UPDATE profiles SET role = 'seller' WHERE id = $1 RETURNING *",
                    caller_id
                )

                step = 'create_seller'
                self.authorize_insert(caller_id, row, table='sellers')
                seller = await conn.fetchrow(
                    '''
                    INSERT INTO sellers (
                        user_id, store_name, store_description,
                        store_address, payment_info
                    ) VALUES ($1, $2, $3, $4, $5)
                    RETURNING *
                    ''',
                    caller_id,
                    row['store_name'],
                    row['store_description'],
                    row['store_address'],
                    row['payment_info']
                )
            except MarketplaceError as e:
                logger.error(f"become_seller failed at {step} for {caller_id}: {e}")
                raise StepError(step, e)
            except (asyncpg.PostgresError, OSError) as e:
                logger.error(f"become_seller failed at {step} for {caller_id}: {e}")
                raise StepError(step, translate_db_error(e))

        logger.info(f"Profile {caller_id} became a seller")
        return _profile_view(dict(profile), dict(seller))

    async def back_to_buyer(self, caller_id: str) -> Dict[str, Any]:
        """Switch the caller back to the buyer role and delete their store.

        Products stay in place; they are owned by the profile, not the store.

        Returns:
            The updated profile with a buyer capability

        Raises:
            ConstraintViolation: If the caller is not a seller
            StepError: If a step fails; `step` is 'update_role' or 'delete_seller'
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM profiles WHERE id = $1', caller_id
            )
            if current['role'] != 'seller':
                raise ConstraintViolation(
                    "Profile is not a seller", field='role', value=current['role']
                )

            step = 'update_role'
            try:
                self.authorize_update(caller_id, current, {'role': 'buyer'})
                profile = await conn.fetchrow(
                    "UPDATE profiles SET role = 'buyer' WHERE id = $1 RETURNING *",
                    caller_id
                )

                step = 'delete_seller'
                seller = await conn.fetchrow(
                    'SELECT * FROM sellers WHERE user_id = $1', caller_id
                )
                if seller is not None:
                    self.authorize_delete(caller_id, dict(seller), table='sellers')
                    await conn.execute(
                        'DELETE FROM sellers WHERE user_id = $1', caller_id
                    )
            except MarketplaceError as e:
                logger.error(f"back_to_buyer failed at {step} for {caller_id}: {e}")
                raise StepError(step, e)
            except (asyncpg.PostgresError, OSError) as e:
                logger.error(f"back_to_buyer failed at {step} for {caller_id}: {e}")
                raise StepError(step, translate_db_error(e))

        logger.info(f"Profile {caller_id} went back to buyer")
        return _profile_view(dict(profile), None)

def _payment_blob(value) -> Optional[Dict[str, Any]]:
    """Normalize payment info (model or dict) to a versioned JSON blob."""
    if value is None:
        return None
    if hasattr(value, 'model_dump'):
        return value.model_dump(mode='json')
    try:
        info = parse_payment_info(value)
    except ValidationError as e:
        raise ConstraintViolation(
            f"Invalid payment info: {e.errors()[0]['msg']}",
            field='payment_info',
            constraint='payment_info_v1'
        )
    return info.model_dump(mode='json') if info else {}

# Create global instance
manager = ProfileManager()

__all__ = [
    'ProfileManager',
    'manager',
    'PROFILE_MUTABLE_FIELDS',
    'SELLER_MUTABLE_FIELDS'
]
