"""Schema v2 - Likes, comments, threaded messages and avatar storage.

This version adds:
- product_likes and product_comments tables
- messages.parent_id for threaded replies
- profiles.wishlist, a JSON array mirroring the wishlist table
- storage_objects, the metadata table of the avatars bucket
"""

import copy

from policies import POLICIES
from .v1 import SETUP, TABLES as V1_TABLES, TRIGGERS as V1_TRIGGERS, PRIVATE_TABLES, grants, updated_at_trigger

def _extend(tables, name, columns=(), foreign_keys=(), indexes=()):
    table = next(t for t in tables if t['name'] == name)
    table['columns'].extend(columns)
    table.setdefault('foreign_keys', []).extend(foreign_keys)
    table.setdefault('indexes', []).extend(indexes)

ADDED_TABLES = [
    {
        'name': 'product_likes',
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
            {'name': 'idx_product_likes_user', 'columns': ['user_id']},
            {'name': 'idx_product_likes_product', 'columns': ['product_id']}
        ]
    },
    {
        'name': 'product_comments',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'user_id', 'type': 'UUID', 'nullable': False},
            {'name': 'product_id', 'type': 'UUID', 'nullable': False},
            {'name': 'comment', 'type': 'TEXT', 'nullable': False, 'check': "length(trim(comment)) > 0"},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'foreign_keys': [
            {'columns': ['user_id'], 'references': 'profiles(id)', 'on_delete': 'CASCADE'},
            {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
        ],
        'indexes': [
            {'name': 'idx_product_comments_product', 'columns': ['product_id']},
            {'name': 'idx_product_comments_created', 'columns': ['created_at DESC']}
        ]
    },
    {
        'name': 'storage_objects',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'bucket_id', 'type': 'TEXT', 'nullable': False},
            {'name': 'name', 'type': 'TEXT', 'nullable': False},
            {'name': 'owner', 'type': 'UUID'},
            {'name': 'content_type', 'type': 'TEXT'},
            {'name': 'size', 'type': 'INT8', 'nullable': False, 'default': '0', 'check': 'size >= 0'},
            {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
            {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
        ],
        'unique': [['bucket_id', 'name']],
        'foreign_keys': [
            {'columns': ['owner'], 'references': 'identities(id)', 'on_delete': 'SET NULL'}
        ]
    }
]

TABLES = copy.deepcopy(V1_TABLES) + ADDED_TABLES

_extend(
    TABLES, 'profiles',
    columns=[{'name': 'wishlist', 'type': 'JSONB', 'nullable': False, 'default': "'[]'::jsonb"}]
)
_extend(
    TABLES, 'messages',
    columns=[{'name': 'parent_id', 'type': 'UUID'}],
    foreign_keys=[{'columns': ['parent_id'], 'references': 'messages(id)', 'on_delete': 'CASCADE'}],
    indexes=[
        {'name': 'idx_messages_product_id', 'columns': ['product_id'], 'where': 'product_id IS NOT NULL'},
        {'name': 'idx_messages_parent_id', 'columns': ['parent_id'], 'where': 'parent_id IS NOT NULL'}
    ]
)

schema = {
    'version': 2,
    'setup': SETUP,
    'tables': TABLES,
    'added_tables': [t['name'] for t in ADDED_TABLES],
    'migrations': [
        '''
        ALTER TABLE profiles
        ADD COLUMN IF NOT EXISTS wishlist JSONB NOT NULL DEFAULT '[]'::jsonb
        ''',
        '''
        UPDATE profiles p
        SET wishlist = COALESCE(
            (SELECT jsonb_agg(w.product_id::text) FROM wishlist w WHERE w.user_id = p.id),
            '[]'::jsonb
        )
        ''',
        '''
        ALTER TABLE messages
        ADD COLUMN IF NOT EXISTS parent_id UUID
        ''',
        '''
        ALTER TABLE messages
        ADD CONSTRAINT messages_parent_id_fkey
        FOREIGN KEY (parent_id) REFERENCES messages(id) ON DELETE CASCADE
        ''',
        '''
        CREATE INDEX IF NOT EXISTS idx_messages_product_id
        ON messages(product_id) WHERE product_id IS NOT NULL
        ''',
        '''
        CREATE INDEX IF NOT EXISTS idx_messages_parent_id
        ON messages(parent_id) WHERE parent_id IS NOT NULL
        '''
    ],
    'triggers': V1_TRIGGERS + [updated_at_trigger('storage_objects')],
    'policies': POLICIES.render_sql(),
    'grants': grants(*PRIVATE_TABLES, anon_readable=POLICIES.tables())
}
