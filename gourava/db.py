import json
import logging
import os
import sqlite3
from contextlib import contextmanager

logger = logging.getLogger("Gourava")

from .browse import filter_items, sort_items
from .constants import DEFAULT_TEMPLATES, INITIALIZED_KEY, SCHEMA_VERSION
from .paths import get_db_path
from .result import RecordNotFound, Result, StoreClosedError
from .schema import SCHEMA_SQL
from .utils import json_dumps, name_of, now_iso

_USAGE_TABLES = ("tags", "criteria")


def _is_text(value):
    return value is None or isinstance(value, str)


def _is_rating_value(value):
    # Values SQLite can bind; bool is an int subclass but never a rating.
    if isinstance(value, bool):
        return False
    return value is None or isinstance(value, (int, float, str))


class ImportFormatError(ValueError):
    pass


class GouravaStore:
    """SQLite-backed store for items, templates and their tags/criteria.

    Construct once, ``open()`` before use and ``close()`` on shutdown. Every
    public operation returns a :class:`~gourava.result.Result`; failures are
    logged here and handed back instead of raised. ``import_data`` is the one
    exception: a document that cannot be parsed raises ``ImportFormatError``.
    """

    def __init__(self, db_path=None):
        self.db_path = db_path or get_db_path()
        self._conn = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def is_open(self):
        return self._conn is not None

    def _connect(self):
        if self.db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        conn = sqlite3.connect(self.db_path, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    def open(self):
        if self._conn is not None:
            return Result.success()
        conn = None
        try:
            conn = self._connect()
            conn.executescript(SCHEMA_SQL)
        except (sqlite3.Error, OSError) as exc:
            logger.exception("Error initializing database at %s", self.db_path)
            if conn is not None:
                conn.close()
            return Result.failure(exc)
        self._conn = conn
        logger.info("Opened database %s (schema %s)", self.db_path, SCHEMA_VERSION)
        return Result.success()

    def close(self):
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        logger.info("Closed database %s", self.db_path)

    def _require_conn(self):
        if self._conn is None:
            raise StoreClosedError("store is not open")
        return self._conn

    @contextmanager
    def _transaction(self):
        conn = self._require_conn()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

    def _run(self, action, fn, *args):
        try:
            return Result.success(fn(*args))
        except RecordNotFound as exc:
            logger.warning("Error %s: %s", action, exc)
            return Result.not_found(exc)
        except StoreClosedError as exc:
            logger.error("Error %s: %s", action, exc)
            return Result.failure(exc)
        except Exception as exc:
            logger.exception("Error %s", action)
            return Result.failure(exc)

    @staticmethod
    def _to_id(value):
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    # ── Schema / seeding ──

    def initialize_database(self):
        return self._run("initializing database", self._init_schema)

    def _init_schema(self):
        self._require_conn().executescript(SCHEMA_SQL)

    def initialize_app(self):
        opened = self.open()
        if not opened:
            return opened
        return self._run("initializing app", self._seed_defaults)

    def _seed_defaults(self):
        conn = self._require_conn()
        row = conn.execute("SELECT value FROM app_state WHERE key = ?", (INITIALIZED_KEY,)).fetchone()
        if row:
            return []

        seeded = []
        for name, tags, criteria in DEFAULT_TEMPLATES:
            existing = conn.execute("SELECT id FROM templates WHERE name = ?", (name,)).fetchone()
            if existing:
                continue
            # A failed template is already logged by create_template; the rest still get a try.
            created = self.create_template(name, list(tags), list(criteria))
            if created:
                logger.info("%s template created with ID: %s", name, created.value)
                seeded.append(name)

        conn.execute(
            "INSERT OR REPLACE INTO app_state (key, value) VALUES (?, ?)",
            (INITIALIZED_KEY, "true"),
        )
        return seeded

    # ── Items ──

    def _insert_item_children(self, conn, item_id, tags, criteria):
        for tag in tags or []:
            conn.execute("INSERT INTO tags (item_id, name) VALUES (?, ?)", (item_id, name_of(tag)))
        for criterion in criteria or []:
            conn.execute(
                "INSERT INTO criteria (item_id, name, rating) VALUES (?, ?, ?)",
                (item_id, name_of(criterion), criterion.get("rating")),
            )

    def add_item(self, title, tags, criteria):
        return self._run("adding item", self._add_item, title, tags, criteria)

    def _add_item(self, title, tags, criteria):
        with self._transaction() as conn:
            item_id = conn.execute("INSERT INTO items (title) VALUES (?)", (title,)).lastrowid
            self._insert_item_children(conn, item_id, tags, criteria)
        return str(item_id)

    def get_items(self, limit=0):
        return self._run("getting items", self._get_items, limit)

    def _get_items(self, limit):
        conn = self._require_conn()
        limit = int(limit or 0)
        if limit > 0:
            rows = conn.execute("SELECT id, title FROM items ORDER BY RANDOM() LIMIT ?", (limit,)).fetchall()
        else:
            rows = conn.execute("SELECT id, title FROM items").fetchall()
        logger.debug("get_items limit=%d rows=%d", limit, len(rows))
        return [self._row_to_item(conn, row) for row in rows]

    def _row_to_item(self, conn, row):
        tags = conn.execute("SELECT name FROM tags WHERE item_id = ? ORDER BY id", (row["id"],)).fetchall()
        criteria = conn.execute(
            "SELECT name, rating FROM criteria WHERE item_id = ? ORDER BY id",
            (row["id"],),
        ).fetchall()
        return {
            "id": str(row["id"]),
            "title": row["title"],
            "tags": [{"name": t["name"]} for t in tags],
            "criteriaRatings": [{"name": c["name"], "rating": c["rating"]} for c in criteria],
        }

    def update_item(self, item_id, title, tags, criteria):
        return self._run("updating item", self._update_item, item_id, title, tags, criteria)

    def _update_item(self, item_id, title, tags, criteria):
        key = self._to_id(item_id)
        with self._transaction() as conn:
            cur = conn.execute("UPDATE items SET title = ? WHERE id = ?", (title, key))
            if cur.rowcount == 0:
                raise RecordNotFound(f"item {item_id} not found")
            conn.execute("DELETE FROM tags WHERE item_id = ?", (key,))
            conn.execute("DELETE FROM criteria WHERE item_id = ?", (key,))
            self._insert_item_children(conn, key, tags, criteria)

    def delete_item(self, item_id):
        return self._run("deleting item", self._delete_item, item_id)

    def _delete_item(self, item_id):
        key = self._to_id(item_id)
        with self._transaction() as conn:
            conn.execute("DELETE FROM tags WHERE item_id = ?", (key,))
            conn.execute("DELETE FROM criteria WHERE item_id = ?", (key,))
            conn.execute("DELETE FROM items WHERE id = ?", (key,))

    def search_items(self, q="", tags=None, order_by=""):
        result = self.get_items(0)
        if not result:
            return result
        items = filter_items(result.value, q=q, tags=tags)
        return Result.success(sort_items(items, order_by))

    # ── Usage counts ──

    def get_tags_usage_count(self, limit=0):
        return self._run("getting tags usage count", self._usage_count, "tags", limit)

    def get_criteria_usage_count(self, limit=0):
        return self._run("getting criteria usage count", self._usage_count, "criteria", limit)

    def _usage_count(self, table, limit):
        if table not in _USAGE_TABLES:
            raise ValueError(f"Unsupported usage table: {table}")
        conn = self._require_conn()
        limit = int(limit or 0)
        if limit > 0:
            rows = conn.execute(
                f"SELECT name, COUNT(*) AS usage_count FROM {table} GROUP BY name ORDER BY RANDOM() LIMIT ?",
                (limit,),
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT name, COUNT(*) AS usage_count FROM {table} GROUP BY name "
                "ORDER BY usage_count DESC, name ASC"
            ).fetchall()
        return [{"name": r["name"], "usage_count": r["usage_count"]} for r in rows]

    # ── Templates ──

    def _insert_template_children(self, conn, template_id, tags, criteria):
        for tag in tags or []:
            conn.execute(
                "INSERT INTO template_tags (template_id, name) VALUES (?, ?)",
                (template_id, name_of(tag)),
            )
        for criterion in criteria or []:
            conn.execute(
                "INSERT INTO template_criteria (template_id, name) VALUES (?, ?)",
                (template_id, name_of(criterion)),
            )

    def _template_children(self, conn, template_id):
        tags = conn.execute(
            "SELECT name FROM template_tags WHERE template_id = ? ORDER BY id",
            (template_id,),
        ).fetchall()
        criteria = conn.execute(
            "SELECT name FROM template_criteria WHERE template_id = ? ORDER BY id",
            (template_id,),
        ).fetchall()
        return [t["name"] for t in tags], [c["name"] for c in criteria]

    def create_template(self, name, tags, criteria):
        return self._run("creating template", self._create_template, name, tags, criteria)

    def _create_template(self, name, tags, criteria):
        with self._transaction() as conn:
            template_id = conn.execute("INSERT INTO templates (name) VALUES (?)", (name,)).lastrowid
            self._insert_template_children(conn, template_id, tags, criteria)
        return template_id

    def get_templates(self):
        return self._run("getting templates", self._get_templates)

    def _get_templates(self):
        conn = self._require_conn()
        out = []
        for row in conn.execute("SELECT id, name FROM templates ORDER BY id").fetchall():
            tags, criteria = self._template_children(conn, row["id"])
            out.append({"id": str(row["id"]), "name": row["name"], "tags": tags, "criteria": criteria})
        return out

    def get_template_by_id(self, template_id):
        return self._run("getting template by ID", self._get_template_by_id, template_id)

    def _get_template_by_id(self, template_id):
        conn = self._require_conn()
        row = conn.execute("SELECT id, name FROM templates WHERE id = ?", (self._to_id(template_id),)).fetchone()
        if not row:
            return None
        tags, criteria = self._template_children(conn, row["id"])
        return {
            "id": str(row["id"]),
            "name": row["name"],
            "tags": [{"name": t} for t in tags],
            "criteria": [{"name": c} for c in criteria],
        }

    def update_template(self, template_id, name, tags, criteria):
        return self._run("updating template", self._update_template, template_id, name, tags, criteria)

    def _update_template(self, template_id, name, tags, criteria):
        key = self._to_id(template_id)
        with self._transaction() as conn:
            cur = conn.execute("UPDATE templates SET name = ? WHERE id = ?", (name, key))
            if cur.rowcount == 0:
                raise RecordNotFound(f"template {template_id} not found")
            conn.execute("DELETE FROM template_tags WHERE template_id = ?", (key,))
            conn.execute("DELETE FROM template_criteria WHERE template_id = ?", (key,))
            self._insert_template_children(conn, key, tags, criteria)

    def delete_template(self, template_id):
        return self._run("deleting template", self._delete_template, template_id)

    def _delete_template(self, template_id):
        key = self._to_id(template_id)
        with self._transaction() as conn:
            conn.execute("DELETE FROM template_tags WHERE template_id = ?", (key,))
            conn.execute("DELETE FROM template_criteria WHERE template_id = ?", (key,))
            conn.execute("DELETE FROM templates WHERE id = ?", (key,))

    # ── Export / import ──

    def export_items(self):
        return self._run("exporting items", self._export, True, False)

    def export_templates(self):
        return self._run("exporting templates", self._export, False, True)

    def export_all(self):
        return self._run("exporting all data", self._export, True, True)

    def _export(self, include_items, include_templates):
        conn = self._require_conn()
        bundle = {"version": SCHEMA_VERSION, "exported_at": now_iso()}
        if include_items:
            rows = conn.execute("SELECT id, title FROM items").fetchall()
            bundle["items"] = [self._export_item(conn, row) for row in rows]
        if include_templates:
            bundle["templates"] = []
            for row in conn.execute("SELECT id, name FROM templates ORDER BY id").fetchall():
                tags, criteria = self._template_children(conn, row["id"])
                bundle["templates"].append(
                    {"id": str(row["id"]), "name": row["name"], "tags": tags, "criteria": criteria}
                )
        return json_dumps(bundle)

    def _export_item(self, conn, row):
        item = self._row_to_item(conn, row)
        return {
            "id": item["id"],
            "title": item["title"],
            "tags": [t["name"] for t in item["tags"]],
            "criteria": item["criteriaRatings"],
        }

    @staticmethod
    def _parse_import(text):
        if isinstance(text, (bytes, bytearray)):
            try:
                text = bytes(text).decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ImportFormatError(f"import document must be UTF-8: {exc}") from exc
        try:
            data = json.loads(text)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ImportFormatError(f"invalid import document: {exc}") from exc
        if not isinstance(data, dict):
            raise ImportFormatError("import document must be a JSON object")
        for key in ("items", "templates"):
            if data.get(key) is not None and not isinstance(data[key], list):
                raise ImportFormatError(f'"{key}" must be a list')
        return data

    def import_data(self, text):
        data = self._parse_import(text)
        return self._run("importing data", self._import_bundle, data)

    @staticmethod
    def _skip(summary, message, *args):
        logger.warning(message, *args)
        summary["skipped"] += 1
        summary["warnings"].append(message % args)

    def _import_bundle(self, data):
        summary = {"items": 0, "templates": 0, "skipped": 0, "warnings": []}
        with self._transaction() as conn:
            for entry in data.get("items") or []:
                if not isinstance(entry, dict) or not _is_text(entry.get("title")):
                    self._skip(summary, "Invalid item data: %r", entry)
                    continue
                self._import_item(conn, entry, summary)
                summary["items"] += 1
            for entry in data.get("templates") or []:
                if not isinstance(entry, dict) or not _is_text(entry.get("name")):
                    self._skip(summary, "Invalid template data: %r", entry)
                    continue
                self._import_template(conn, entry, summary)
                summary["templates"] += 1
        logger.info(
            "Imported %d items and %d templates (%d records skipped)",
            summary["items"],
            summary["templates"],
            summary["skipped"],
        )
        return summary

    def _import_names(self, entry, summary, key, label):
        names = []
        for value in entry.get(key) or []:
            name = name_of(value)
            if not name:
                self._skip(summary, "Invalid %s name: %r", label, value)
                continue
            names.append(name)
        return names

    def _import_item(self, conn, entry, summary):
        item_id = conn.execute("INSERT INTO items (title) VALUES (?)", (entry.get("title"),)).lastrowid
        for name in self._import_names(entry, summary, "tags", "tag"):
            conn.execute("INSERT INTO tags (item_id, name) VALUES (?, ?)", (item_id, name))

        criteria = entry.get("criteria")
        if not isinstance(criteria, list):
            logger.warning("No criteria found for item: %r", entry.get("title"))
            return
        for criterion in criteria:
            if (
                isinstance(criterion, dict)
                and criterion.get("name")
                and "rating" in criterion
                and _is_rating_value(criterion["rating"])
            ):
                conn.execute(
                    "INSERT INTO criteria (item_id, name, rating) VALUES (?, ?, ?)",
                    (item_id, str(criterion["name"]), criterion["rating"]),
                )
            else:
                self._skip(summary, "Invalid criterion data: %r", criterion)

    def _import_template(self, conn, entry, summary):
        template_id = conn.execute("INSERT INTO templates (name) VALUES (?)", (entry.get("name"),)).lastrowid
        self._insert_template_children(
            conn,
            template_id,
            self._import_names(entry, summary, "tags", "tag"),
            self._import_names(entry, summary, "criteria", "criterion"),
        )
