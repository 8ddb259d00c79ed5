SCHEMA_SQL = r"""
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS app_state (
  key TEXT PRIMARY KEY,
  value TEXT
);

CREATE TABLE IF NOT EXISTS items (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  title TEXT
);

CREATE TABLE IF NOT EXISTS tags (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  item_id INTEGER,
  name TEXT,
  FOREIGN KEY (item_id) REFERENCES items(id)
);

-- NUMERIC keeps 4 as an integer and 4.5 as a real.
CREATE TABLE IF NOT EXISTS criteria (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  item_id INTEGER,
  name TEXT,
  rating NUMERIC,
  FOREIGN KEY (item_id) REFERENCES items(id)
);

CREATE TABLE IF NOT EXISTS templates (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT
);

CREATE TABLE IF NOT EXISTS template_tags (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  template_id INTEGER,
  name TEXT,
  FOREIGN KEY (template_id) REFERENCES templates(id)
);

CREATE TABLE IF NOT EXISTS template_criteria (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  template_id INTEGER,
  name TEXT,
  FOREIGN KEY (template_id) REFERENCES templates(id)
);

CREATE INDEX IF NOT EXISTS idx_tags_item ON tags(item_id);
CREATE INDEX IF NOT EXISTS idx_criteria_item ON criteria(item_id);
CREATE INDEX IF NOT EXISTS idx_template_tags_template ON template_tags(template_id);
CREATE INDEX IF NOT EXISTS idx_template_criteria_template ON template_criteria(template_id);
"""
