"""Schema v1 - Exchange tables.

This version includes tables for:
- Users and credit balances
- Inventories (stacks and unique items)
- Trades between two users
- Market listings and buy orders
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'user_id', 'type': 'TEXT', 'primary_key': True},
                {'name': 'username', 'type': 'TEXT'},
                {'name': 'balance', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': ['balance >= 0']
        },
        {
            'name': 'inventories',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'item_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'amount', 'type': 'INT8', 'nullable': False},
                {'name': 'metadata', 'type': 'JSONB'},
                {'name': 'unique_id', 'type': 'TEXT'},
                {'name': 'sellable', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'purchase_price', 'type': 'INT8'},
                {'name': 'rarity', 'type': 'TEXT'},
                {'name': 'seq', 'type': 'INT8', 'nullable': False, 'default': 'unique_rowid()'}
            ],
            'checks': [
                'amount > 0',
                '(unique_id IS NULL) = (metadata IS NULL)',
                'unique_id IS NULL OR amount = 1'
            ],
            'indexes': [
                {'name': 'idx_inventories_user_item', 'columns': ['user_id', 'item_id']},
                {
                    'name': 'idx_inventories_unique',
                    'columns': ['item_id', 'unique_id'],
                    'unique': True,
                    'where': 'unique_id IS NOT NULL'
                }
            ]
        },
        {
            'name': 'trades',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'from_user_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'to_user_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'pair_low', 'type': 'TEXT', 'nullable': False},
                {'name': 'pair_high', 'type': 'TEXT', 'nullable': False},
                {'name': 'from_user_items', 'type': 'JSONB', 'nullable': False, 'default': "'[]'"},
                {'name': 'to_user_items', 'type': 'JSONB', 'nullable': False, 'default': "'[]'"},
                {'name': 'approved_from_user', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'approved_to_user', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_trades_from_user', 'columns': ['from_user_id']},
                {'name': 'idx_trades_to_user', 'columns': ['to_user_id']},
                {
                    'name': 'idx_trades_pending_pair',
                    'columns': ['pair_low', 'pair_high'],
                    'unique': True,
                    'where': "status = 'pending'"
                }
            ]
        },
        {
            'name': 'market_listings',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'seller_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'item_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'INT8', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'active'"},
                {'name': 'metadata', 'type': 'JSONB'},
                {'name': 'unique_id', 'type': 'TEXT'},
                {'name': 'purchase_price', 'type': 'INT8'},
                {'name': 'rarity', 'type': 'TEXT'},
                {'name': 'buyer_id', 'type': 'TEXT'},
                {'name': 'sold_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'seq', 'type': 'INT8', 'nullable': False, 'default': 'unique_rowid()'}
            ],
            'checks': ['price > 0'],
            'indexes': [
                {'name': 'idx_listings_seller', 'columns': ['seller_id']},
                {'name': 'idx_listings_item_status_price', 'columns': ['item_id', 'status', 'price']}
            ]
        },
        {
            'name': 'buy_orders',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'buyer_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'item_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'INT8', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'active'"},
                {'name': 'sale_id', 'type': 'UUID'},
                {'name': 'fulfilled_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'seq', 'type': 'INT8', 'nullable': False, 'default': 'unique_rowid()'}
            ],
            'checks': ['price > 0'],
            'foreign_keys': [
                {'columns': ['sale_id'], 'references': 'market_listings(id)'}
            ],
            'indexes': [
                {'name': 'idx_buy_orders_buyer', 'columns': ['buyer_id']},
                {'name': 'idx_buy_orders_item_status_price', 'columns': ['item_id', 'status', 'price']}
            ]
        }
    ],
    'migrations': []
}
