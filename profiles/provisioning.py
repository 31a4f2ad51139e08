"""Profile provisioning for identities.

The on_identity_created trigger provisions a profile when an identity row is
inserted. `provision_profile` runs the same idempotent inserts from Python for
identities whose profile is missing, e.g. rows created before the trigger was
installed. Both paths derive the row values with the same rules.
"""

import logging
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = 'User'
DEFAULT_ROLE = 'buyer'


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def profile_defaults(metadata: Optional[Mapping[str, Any]]) -> Dict[str, Optional[str]]:
    """Derive the provisioned row values from identity metadata.

    Returns:
        Dict with full_name, role and store_name (None unless the role is seller)
    """
    metadata = metadata or {}
    full_name = _clean(metadata.get('full_name')) or PLACEHOLDER_NAME
    role = _clean(metadata.get('role')) or DEFAULT_ROLE
    store_name = None
    if role == 'seller':
        store_name = _clean(metadata.get('store_name')) or full_name
    return {'full_name': full_name, 'role': role, 'store_name': store_name}


async def provision_profile(conn, identity: Mapping[str, Any]) -> bool:
    """Create the profile (and seller row) for an identity if missing.

    Args:
        conn: Database connection, privileged (not acting as a caller)
        identity: Row with id, email and raw_user_meta_data

    Returns:
        True if a profile row was inserted, False if it already existed
    """
    values = profile_defaults(identity.get('raw_user_meta_data'))

    created = await conn.fetchval(
        '''
        INSERT INTO profiles (id, full_name, email, role)
        VALUES ($1, $2, $3, $4)
        ON CONFLICT (id) DO NOTHING
        RETURNING id
        ''',
        identity['id'],
        values['full_name'],
        identity['email'],
        values['role']
    )

    if values['store_name']:
        await conn.execute(
            '''
            INSERT INTO sellers (user_id, store_name)
            VALUES ($1, $2)
            ON CONFLICT (user_id) DO NOTHING
            ''',
            identity['id'],
            values['store_name']
        )

    if created:
        logger.info(f"Provisioned {values['role']} profile {identity['id']}")
    return created is not None
