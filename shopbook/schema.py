SCHEMA_SQL = r"""
-- Catalog (id is an external barcode, never auto-generated sequentially)
CREATE TABLE IF NOT EXISTS products (
  id INTEGER PRIMARY KEY,
  name TEXT NOT NULL,
  price_buy REAL NOT NULL,
  price_sell REAL NOT NULL,
  stock INTEGER DEFAULT NULL,            -- NULL = untracked inventory
  stock_danger INTEGER DEFAULT NULL,     -- low-stock threshold
  created_at TEXT
);

-- Live (still reversible) orders
CREATE TABLE IF NOT EXISTS orders (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  created_at TEXT NOT NULL
);

-- One row per order line, frozen when the order is placed
CREATE TABLE IF NOT EXISTS products_snapshots (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  order_id INTEGER NOT NULL,
  product_id INTEGER,                    -- weak reference, product may be gone
  name TEXT,
  price_buy REAL,
  price_sell REAL,
  quantity INTEGER NOT NULL,
  created_at TEXT,
  FOREIGN KEY (order_id) REFERENCES orders(id)
);

-- Customers buying on credit; amount caches the sum of linked totals
CREATE TABLE IF NOT EXISTS borrowers (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  date TEXT NOT NULL,
  amount REAL NOT NULL
);

-- Permanent debt history (original_order_id is by value, not a FK)
CREATE TABLE IF NOT EXISTS orders_snapshots (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  original_order_id INTEGER,
  borrower_id INTEGER NOT NULL,
  date TEXT NOT NULL,
  total_price REAL NOT NULL,
  FOREIGN KEY (borrower_id) REFERENCES borrowers(id)
);

CREATE TABLE IF NOT EXISTS orders_snapshots_products (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  order_snapshot_id INTEGER NOT NULL,
  name TEXT NOT NULL,
  price_sell REAL NOT NULL,
  quantity INTEGER NOT NULL,
  FOREIGN KEY (order_snapshot_id) REFERENCES orders_snapshots(id)
);

CREATE INDEX IF NOT EXISTS idx_products_snapshots_order ON products_snapshots(order_id);
CREATE INDEX IF NOT EXISTS idx_orders_snapshots_original ON orders_snapshots(original_order_id);
CREATE INDEX IF NOT EXISTS idx_orders_snapshots_borrower ON orders_snapshots(borrower_id);

-- Single-row memory of the last external import id
CREATE TABLE IF NOT EXISTS import_id_table (
  id INTEGER PRIMARY KEY DEFAULT 1,
  drive_id TEXT NOT NULL
);
"""
