"""Schema v1 - Initial marketplace schema.

This version includes tables for:
- Identities and sessions (the auth provider's side)
- Profiles and seller stores
- Products and orders
- Direct messages and product inquiries
- Carts and wishlists

Profiles are created by the on_identity_created trigger, never by callers.
Every table except identities and auth_sessions is protected by row-level
security policies rendered from the policies package.
"""

from typing import Iterable

from policies import POLICIES, PolicySet

ORDER_STATUSES = ('pending', 'confirmed', 'shipped', 'delivered', 'cancelled')

# Roles and helper functions, created before any table. Signed-in callers run
# as authenticated, anonymous callers as anon.
SETUP = [
    '''
    DO $$
    BEGIN
        IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'authenticated') THEN
            CREATE ROLE authenticated NOLOGIN;
        END IF;
        IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'anon') THEN
            CREATE ROLE anon NOLOGIN;
        END IF;
    END
    $$
    ''',
    'GRANT authenticated TO CURRENT_USER',
    'GRANT anon TO CURRENT_USER',
    '''
    CREATE OR REPLACE FUNCTION app_uid()
    RETURNS UUID
    LANGUAGE sql STABLE
    AS $$ SELECT NULLIF(current_setting('app.user_id', true), '')::uuid $$
    '''
]

UPDATED_AT_BODY = '''
BEGIN
    NEW.updated_at = now();
    RETURN NEW;
END;
'''

NEW_IDENTITY_BODY = '''
BEGIN
    INSERT INTO profiles (id, full_name, email, role)
    VALUES (
        NEW.id,
        COALESCE(NULLIF(NEW.raw_user_meta_data->>'full_name', ''), 'User'),
        NEW.email,
        COALESCE(NULLIF(NEW.raw_user_meta_data->>'role', ''), 'buyer')
    )
    ON CONFLICT (id) DO NOTHING;

    IF COALESCE(NEW.raw_user_meta_data->>'role', 'buyer') = 'seller' THEN
        INSERT INTO sellers (user_id, store_name)
        VALUES (
            NEW.id,
            COALESCE(
                NULLIF(NEW.raw_user_meta_data->>'store_name', ''),
                NULLIF(NEW.raw_user_meta_data->>'full_name', ''),
                'User'
            )
        )
        ON CONFLICT (user_id) DO NOTHING;
    END IF;

    RETURN NEW;
END;
'''

ORDER_TRANSITION_BODY = '''
BEGIN
    IF (OLD.status = 'pending' AND NEW.status IN ('confirmed', 'cancelled'))
        OR (OLD.status = 'confirmed' AND NEW.status = 'shipped')
        OR (OLD.status = 'shipped' AND NEW.status = 'delivered') THEN
        RETURN NEW;
    END IF;
    RAISE EXCEPTION 'invalid order status transition % -> %', OLD.status, NEW.status
        USING ERRCODE = 'check_violation',
              CONSTRAINT = 'orders_status_check',
              TABLE = 'orders';
END;
'''

def updated_at_trigger(table: str) -> dict:
    """Trigger definition keeping `updated_at` at server time on every update."""
    return {
        'name': f'{table}_updated_at',
        'table': table,
        'timing': 'BEFORE',
        'event': 'UPDATE',
        'function_name': 'handle_updated_at',
        'function_body': UPDATED_AT_BODY
    }

def grants(*private_tables: str, anon_readable: Iterable[str] = ()) -> list:
    """Grant table access to the caller roles.

    `authenticated` gets full access to every table except the private ones;
    `anon` may only SELECT from `anon_readable`, which must all have row-level
    security enabled, so policies decide which rows it sees.
    """
    statements = [
        'GRANT USAGE ON SCHEMA public TO authenticated',
        'GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO authenticated',
        'GRANT USAGE, SELECT ON ALL SEQUENCES IN SCHEMA public TO authenticated',
        'GRANT EXECUTE ON FUNCTION app_uid() TO authenticated',
        'GRANT USAGE ON SCHEMA public TO anon',
        'REVOKE ALL ON ALL TABLES IN SCHEMA public FROM anon',
        'GRANT EXECUTE ON FUNCTION app_uid() TO anon'
    ]
    statements.extend(
        f'REVOKE ALL ON {table} FROM authenticated' for table in private_tables
    )
    statements.extend(f'GRANT SELECT ON {table} TO anon' for table in anon_readable)
    return statements

PRIVATE_TABLES = ('schema_version', 'identities', 'auth_sessions')

TABLES = [
    {
        'name': 'identities',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'email', 'type': 'TEXT', 'nullable': False, 'unique': True},
            {'name': 'password_hash', 'type': 'TEXT', 'nullable': False},
            {'name': 'raw_user_meta_data', 'type': 'JSONB', 'nullable': False, 'default': "'{}'::jsonb"},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ]
    },
    {
        'name': 'auth_sessions',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'identity_id', 'type': 'UUID', 'nullable': False},
            {'name': 'token', 'type': 'TEXT', 'nullable': False},
            {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
            {'name': 'revoked', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
            {'name': 'revoked_at', 'type': 'TIMESTAMPTZ'},
            {'name': 'user_agent', 'type': 'TEXT'},
            {'name': 'ip_address', 'type': 'TEXT'},
            {'name': 'last_used_at', 'type': 'TIMESTAMPTZ'},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'foreign_keys': [
            {'columns': ['identity_id'], 'references': 'identities(id)', 'on_delete': 'CASCADE'}
        ],
        'indexes': [
            {'name': 'idx_auth_sessions_identity', 'columns': ['identity_id']},
            {'name': 'idx_auth_sessions_token', 'columns': ['token'], 'unique': True}
        ]
    },
    {
        'name': 'profiles',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True},
            {'name': 'full_name', 'type': 'TEXT', 'nullable': False},
            {'name': 'role', 'type': 'TEXT', 'nullable': False, 'check': "role IN ('buyer', 'seller')"},
            {'name': 'email', 'type': 'TEXT', 'nullable': False},
            {'name': 'phone', 'type': 'TEXT'},
            {'name': 'profile_image', 'type': 'TEXT'},
            {'name': 'bio', 'type': 'TEXT'},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
            {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'foreign_keys': [
            {'columns': ['id'], 'references': 'identities(id)', 'on_delete': 'CASCADE'}
        ]
    },
    {
        'name': 'sellers',
        'columns': [
            {'name': 'id', 'type': 'SERIAL', 'primary_key': True},
            {'name': 'user_id', 'type': 'UUID', 'nullable': False, 'unique': True},
            {'name': 'store_name', 'type': 'TEXT', 'nullable': False, 'check': "length(trim(store_name)) > 0"},
            {'name': 'store_description', 'type': 'TEXT'},
            {'name': 'store_address', 'type': 'TEXT'},
            {'name': 'payment_info', 'type': 'JSONB', 'nullable': False, 'default': "'{}'::jsonb"},
            {'name': 'is_verified', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
            {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'foreign_keys': [
            {'columns': ['user_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'}
        ]
    },
    {
        'name': 'products',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
            {'name': 'title', 'type': 'TEXT', 'nullable': False},
            {'name': 'description', 'type': 'TEXT', 'nullable': False},
            {'name': 'price', 'type': 'NUMERIC(10,2)', 'nullable': False, 'check': 'price > 0'},
            {'name': 'stock', 'type': 'INTEGER', 'nullable': False, 'default': '0', 'check': 'stock >= 0'},
            {'name': 'category', 'type': 'TEXT', 'nullable': False},
            {'name': 'image_url', 'type': 'TEXT'},
            {'name': 'video_url', 'type': 'TEXT'},
            {'name': 'is_active', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
            {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'foreign_keys': [
            {'columns': ['seller_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'}
        ],
        'indexes': [
            {'name': 'idx_products_seller', 'columns': ['seller_id']},
            {'name': 'idx_products_category', 'columns': ['category'], 'where': 'is_active'}
        ]
    },
    {
        'name': 'orders',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
            {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
            {'name': 'product_id', 'type': 'UUID', 'nullable': False},
            {'name': 'quantity', 'type': 'INTEGER', 'nullable': False, 'check': 'quantity > 0'},
            {'name': 'unit_price', 'type': 'NUMERIC(10,2)', 'nullable': False, 'check': 'unit_price > 0'},
            {'name': 'total_price', 'type': 'NUMERIC(10,2)', 'nullable': False},
            {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'",
             'check': "status IN ({})".format(', '.join(f"'{s}'" for s in ORDER_STATUSES))},
            {'name': 'shipping_address', 'type': 'JSONB'},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
            {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'checks': [
            {'name': 'total_price', 'expression': 'total_price = unit_price * quantity'}
        ],
        'foreign_keys': [
            {'columns': ['buyer_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'},
            {'columns': ['seller_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'},
            {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
        ],
        'indexes': [
            {'name': 'idx_orders_buyer', 'columns': ['buyer_id']},
            {'name': 'idx_orders_seller', 'columns': ['seller_id']},
            {'name': 'idx_orders_status', 'columns': ['status']}
        ]
    },
    {
        'name': 'messages',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'from_user_id', 'type': 'UUID', 'nullable': False},
            {'name': 'to_user_id', 'type': 'UUID', 'nullable': False},
            {'name': 'product_id', 'type': 'UUID'},
            {'name': 'message', 'type': 'TEXT', 'nullable': False, 'check': "length(trim(message)) > 0"},
            {'name': 'is_read', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
            {'name': 'message_type', 'type': 'TEXT', 'nullable': False, 'default': "'direct'",
             'check': "message_type IN ('direct', 'product_inquiry')"},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'foreign_keys': [
            {'columns': ['from_user_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'},
            {'columns': ['to_user_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'},
            {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'SET NULL'}
        ],
        'indexes': [
            {'name': 'idx_messages_from_user', 'columns': ['from_user_id']},
            {'name': 'idx_messages_to_user', 'columns': ['to_user_id']},
            {'name': 'idx_messages_created', 'columns': ['created_at DESC']}
        ]
    },
    {
        'name': 'cart_items',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'user_id', 'type': 'UUID', 'nullable': False},
            {'name': 'product_id', 'type': 'UUID', 'nullable': False},
            {'name': 'quantity', 'type': 'INTEGER', 'nullable': False, 'check': 'quantity > 0'},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'unique': [['user_id', 'product_id']],
        'foreign_keys': [
            {'columns': ['user_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'},
            {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
        ]
    },
    {
        'name': 'wishlist',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'user_id', 'type': 'UUID', 'nullable': False},
            {'name': 'product_id', 'type': 'UUID', 'nullable': False},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'unique': [['user_id', 'product_id']],
        'foreign_keys': [
            {'columns': ['user_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'},
            {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
        ],
        'indexes': [
            {'name': 'idx_wishlist_user', 'columns': ['user_id']},
            {'name': 'idx_wishlist_product', 'columns': ['product_id']}
        ]
    }
]

TRIGGERS = [
    {
        'name': 'on_identity_created',
        'table': 'identities',
        'timing': 'AFTER',
        'event': 'INSERT',
        'function_name': 'handle_new_identity',
        'function_body': NEW_IDENTITY_BODY,
        'security_definer': True
    },
    {
        'name': 'orders_status_transition',
        'table': 'orders',
        'timing': 'BEFORE',
        'event': 'UPDATE OF status',
        'function_name': 'check_order_transition',
        'function_body': ORDER_TRANSITION_BODY
    },
    *(updated_at_trigger(t) for t in ('profiles', 'sellers', 'products', 'orders'))
]

V1_TABLES = {t['name'] for t in TABLES}

schema = {
    'version': 1,
    'setup': SETUP,
    'tables': TABLES,
    'triggers': TRIGGERS,
    'policies': PolicySet(p for p in POLICIES if p.table in V1_TABLES).render_sql(),
    'grants': grants(*PRIVATE_TABLES, anon_readable=[t for t in POLICIES.tables() if t in V1_TABLES])
}
