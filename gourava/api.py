import asyncio
import json
import logging
from datetime import datetime

from aiohttp import web

from .constants import HOME_ITEM_SAMPLE, HOME_USAGE_SAMPLE
from .db import GouravaStore, ImportFormatError
from .forms import FormError, clean_item_form, clean_template_form, draft_from_template

logger = logging.getLogger("Gourava")

PREFIX = "/gourava"

STORE_KEY = web.AppKey("store", GouravaStore)
LOCK_KEY = web.AppKey("store_lock", asyncio.Lock)

_TRUTHY = {"1", "true", "yes", "on"}

routes = web.RouteTableDef()


def _json_response(obj, status=200):
    return web.Response(
        status=status,
        text=json.dumps(obj, ensure_ascii=False),
        content_type="application/json",
    )


def _bad_request(msg):
    return _json_response({"error": msg}, status=400)


def _result_response(result, status=200, not_found="Not found"):
    if result.ok:
        return _json_response(result.value, status=status)
    if result.is_not_found:
        return _json_response({"error": not_found}, status=404)
    return _json_response({"error": result.error}, status=500)


def _query_limit(request, default=0):
    try:
        return int(request.query.get("limit", default))
    except (TypeError, ValueError):
        return default


def _query_flag(request, name):
    return str(request.query.get(name, "") or "").strip().lower() in _TRUTHY


def _download_name(scopes):
    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M")
    return "_".join(["export", *scopes]) + f"_{stamp}.json"


async def _call(request, method, *args):
    # One store call at a time; a multi-statement operation must not interleave with another.
    async with request.app[LOCK_KEY]:
        return getattr(request.app[STORE_KEY], method)(*args)


async def _read_json(request):
    try:
        payload = await request.json()
    except Exception:
        return None, _bad_request("Invalid JSON body")
    if not isinstance(payload, dict):
        return None, _bad_request("Request body must be a JSON object")
    return payload, None


@routes.get(PREFIX + "/health")
async def health(request):
    store = request.app[STORE_KEY]
    return _json_response({"ok": store.is_open, "db_path": store.db_path})


@routes.get(PREFIX + "/home")
async def home(request):
    items = await _call(request, "get_items", HOME_ITEM_SAMPLE)
    tags = await _call(request, "get_tags_usage_count", HOME_USAGE_SAMPLE)
    criteria = await _call(request, "get_criteria_usage_count", HOME_USAGE_SAMPLE)
    templates = await _call(request, "get_templates")
    for result in (items, tags, criteria, templates):
        if not result:
            return _result_response(result)
    return _json_response(
        {
            "items": items.value,
            "tags": tags.value,
            "criteria": criteria.value,
            "templates": templates.value,
        }
    )


@routes.get(PREFIX + "/items")
async def list_items(request):
    result = await _call(request, "get_items", _query_limit(request))
    if not result:
        return _result_response(result)
    return _json_response({"items": result.value})


@routes.get(PREFIX + "/items/search")
async def search_items(request):
    q = request.query.get("q", "")
    tags = [t.strip() for t in request.query.get("tags", "").split(",") if t.strip()]
    order_by = request.query.get("order_by", "")
    result = await _call(request, "search_items", q, tags, order_by)
    if not result:
        return _result_response(result)
    return _json_response({"items": result.value})


@routes.post(PREFIX + "/items")
async def create_item(request):
    payload, error = await _read_json(request)
    if error:
        return error
    try:
        title, tags, criteria = clean_item_form(
            payload.get("title"), payload.get("tags"), payload.get("criteria")
        )
    except FormError as exc:
        return _bad_request(str(exc))
    result = await _call(request, "add_item", title, tags, criteria)
    if not result:
        return _result_response(result)
    return _json_response({"id": result.value}, status=201)


@routes.put(PREFIX + "/items/{item_id}")
async def update_item(request):
    item_id = request.match_info["item_id"]
    payload, error = await _read_json(request)
    if error:
        return error
    try:
        title, tags, criteria = clean_item_form(
            payload.get("title"), payload.get("tags"), payload.get("criteria")
        )
    except FormError as exc:
        return _bad_request(str(exc))
    result = await _call(request, "update_item", item_id, title, tags, criteria)
    if not result:
        return _result_response(result, not_found="Item not found")
    return _json_response({"ok": True})


@routes.delete(PREFIX + "/items/{item_id}")
async def delete_item(request):
    result = await _call(request, "delete_item", request.match_info["item_id"])
    if not result:
        return _result_response(result)
    return _json_response({"ok": True})


@routes.get(PREFIX + "/stats/tags")
async def tags_usage(request):
    result = await _call(request, "get_tags_usage_count", _query_limit(request))
    if not result:
        return _result_response(result)
    return _json_response({"items": result.value})


@routes.get(PREFIX + "/stats/criteria")
async def criteria_usage(request):
    result = await _call(request, "get_criteria_usage_count", _query_limit(request))
    if not result:
        return _result_response(result)
    return _json_response({"items": result.value})


@routes.get(PREFIX + "/templates")
async def list_templates(request):
    result = await _call(request, "get_templates")
    if not result:
        return _result_response(result)
    return _json_response({"items": result.value})


@routes.post(PREFIX + "/templates")
async def create_template(request):
    payload, error = await _read_json(request)
    if error:
        return error
    try:
        name, tags, criteria = clean_template_form(
            payload.get("name"), payload.get("tags"), payload.get("criteria")
        )
    except FormError as exc:
        return _bad_request(str(exc))
    result = await _call(request, "create_template", name, tags, criteria)
    if not result:
        return _result_response(result)
    return _json_response({"id": str(result.value)}, status=201)


async def _load_template(request):
    result = await _call(request, "get_template_by_id", request.match_info["template_id"])
    if not result:
        return None, _result_response(result)
    if result.value is None:
        return None, _json_response({"error": "Template not found"}, status=404)
    return result.value, None


@routes.get(PREFIX + "/templates/{template_id}")
async def get_template(request):
    template, error = await _load_template(request)
    if error:
        return error
    return _json_response(template)


@routes.get(PREFIX + "/templates/{template_id}/draft")
async def template_draft(request):
    template, error = await _load_template(request)
    if error:
        return error
    return _json_response(draft_from_template(template))


@routes.put(PREFIX + "/templates/{template_id}")
async def update_template(request):
    template_id = request.match_info["template_id"]
    payload, error = await _read_json(request)
    if error:
        return error
    try:
        name, tags, criteria = clean_template_form(
            payload.get("name"), payload.get("tags"), payload.get("criteria")
        )
    except FormError as exc:
        return _bad_request(str(exc))
    result = await _call(request, "update_template", template_id, name, tags, criteria)
    if not result:
        return _result_response(result, not_found="Template not found")
    return _json_response({"ok": True})


@routes.delete(PREFIX + "/templates/{template_id}")
async def delete_template(request):
    result = await _call(request, "delete_template", request.match_info["template_id"])
    if not result:
        return _result_response(result)
    return _json_response({"ok": True})


@routes.get(PREFIX + "/export")
async def export_data(request):
    with_items = _query_flag(request, "items")
    with_templates = _query_flag(request, "templates")
    if with_items and with_templates:
        result = await _call(request, "export_all")
        scopes = ["items", "templates"]
    elif with_items:
        result = await _call(request, "export_items")
        scopes = ["items"]
    elif with_templates:
        result = await _call(request, "export_templates")
        scopes = ["templates"]
    else:
        return _bad_request("Select items and/or templates to export")
    if not result:
        return _result_response(result)
    return web.Response(
        text=result.value,
        content_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{_download_name(scopes)}"'},
    )


@routes.post(PREFIX + "/import")
async def import_data(request):
    content_type = (request.content_type or "").lower()
    if content_type.startswith("multipart/"):
        form = await request.post()
        upload = form.get("file")
        if not upload or not getattr(upload, "file", None):
            return _bad_request("Missing import file")
        raw_bytes = upload.file.read()
    else:
        payload, error = await _read_json(request)
        if error:
            return error
        content = payload.get("content", "")
        if isinstance(content, (dict, list)):
            content = json.dumps(content, ensure_ascii=False)
        raw_bytes = str(content or "").encode("utf-8")

    try:
        text = raw_bytes.decode("utf-8-sig")
    except UnicodeDecodeError:
        return _bad_request("Import file must be UTF-8 encoded")

    try:
        result = await _call(request, "import_data", text)
    except ImportFormatError as exc:
        return _bad_request(str(exc))
    return _result_response(result)


async def _open_store(app):
    result = app[STORE_KEY].initialize_app()
    if not result:
        logger.error("Store unavailable: %s", result.error)
    elif result.value:
        logger.info("Seeded default templates: %s", ", ".join(result.value))


async def _close_store(app):
    app[STORE_KEY].close()


def create_app(store=None):
    app = web.Application()
    app[STORE_KEY] = store if store is not None else GouravaStore()
    app[LOCK_KEY] = asyncio.Lock()
    app.add_routes(routes)
    app.on_startup.append(_open_store)
    app.on_cleanup.append(_close_store)
    return app
