"""Application layer - Use cases of the order core.

- **OrderService**: order creation, lifecycle transitions, lookups and listings
- **CartSnapshotValidator**: revalidates and reprices a cart before ordering
- **InventoryLedger**: atomic reserve/release of item quantities
- **Ports**: contracts of the catalog, cart store and user store
"""
