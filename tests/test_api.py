import json
import tempfile
from pathlib import Path

from aiohttp import FormData
from aiohttp.test_utils import AioHTTPTestCase

from gourava.api import create_app
from gourava.db import GouravaStore

P = "/gourava"


class GouravaApiTests(AioHTTPTestCase):
    async def get_application(self):
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.store = GouravaStore(str(Path(temp_dir.name) / "gourava.db"))
        return create_app(self.store)

    async def _create_item(self, title="Espresso", tags=("coffee",), criteria=None):
        resp = await self.client.post(
            P + "/items",
            json={
                "title": title,
                "tags": list(tags),
                "criteria": criteria if criteria is not None else [{"name": "Taste", "rating": "4"}],
            },
        )
        self.assertEqual(resp.status, 201)
        return (await resp.json())["id"]

    async def test_health_reports_open_store(self):
        resp = await self.client.get(P + "/health")

        self.assertEqual(resp.status, 200)
        body = await resp.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["db_path"], self.store.db_path)

    async def test_startup_seeds_default_templates(self):
        resp = await self.client.get(P + "/templates")

        names = [t["name"] for t in (await resp.json())["items"]]
        self.assertEqual(names, ["Pizza", "Movie", "Clothes"])

    async def test_item_crud(self):
        item_id = await self._create_item(criteria=[{"name": "Aroma", "rating": "3,5"}])

        resp = await self.client.get(P + "/items")
        items = (await resp.json())["items"]
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["id"], item_id)
        self.assertEqual(items[0]["criteriaRatings"], [{"name": "Aroma", "rating": 3.5}])

        resp = await self.client.put(
            P + f"/items/{item_id}",
            json={"title": "Ristretto", "tags": ["coffee"], "criteria": []},
        )
        self.assertEqual(resp.status, 200)
        items = (await (await self.client.get(P + "/items")).json())["items"]
        self.assertEqual(items[0]["title"], "Ristretto")
        self.assertEqual(items[0]["criteriaRatings"], [])

        resp = await self.client.delete(P + f"/items/{item_id}")
        self.assertEqual(resp.status, 200)
        items = (await (await self.client.get(P + "/items")).json())["items"]
        self.assertEqual(items, [])

    async def test_update_missing_item_is_404(self):
        resp = await self.client.put(
            P + "/items/999",
            json={"title": "Ghost", "tags": ["none"], "criteria": []},
        )

        self.assertEqual(resp.status, 404)

    async def test_invalid_item_forms_are_rejected(self):
        bad_payloads = [
            {"title": "", "tags": ["coffee"]},
            {"title": "Espresso", "tags": []},
            {"title": "Espresso", "tags": ["coffee"], "criteria": [{"name": "Taste", "rating": "6"}]},
            {"title": "Espresso", "tags": ["coffee"], "criteria": ["Taste"]},
            {"title": "Espresso", "tags": "coffee", "criteria": []},
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                resp = await self.client.post(P + "/items", json=payload)
                self.assertEqual(resp.status, 400)
                self.assertIn("error", await resp.json())

        resp = await self.client.put(P + "/items/1", json={"title": "X", "tags": ["t"], "criteria": ["Taste"]})
        self.assertEqual(resp.status, 400)
        resp = await self.client.post(P + "/items", data="not json", headers={"Content-Type": "application/json"})
        self.assertEqual(resp.status, 400)
        items = (await (await self.client.get(P + "/items")).json())["items"]
        self.assertEqual(items, [])

    async def test_search_filters_and_sorts(self):
        await self._create_item("Latte", ("coffee", "milk"), [{"name": "Taste", "rating": 3}])
        await self._create_item("Espresso", ("coffee",), [{"name": "Taste", "rating": 5}])
        await self._create_item("Green tea", ("tea",), [])

        resp = await self.client.get(P + "/items/search", params={"tags": "coffee", "order_by": "ratingDesc"})
        titles = [i["title"] for i in (await resp.json())["items"]]
        self.assertEqual(titles, ["Espresso", "Latte"])

        resp = await self.client.get(P + "/items/search", params={"q": "TEA"})
        titles = [i["title"] for i in (await resp.json())["items"]]
        self.assertEqual(titles, ["Green tea"])

    async def test_stats_and_home(self):
        await self._create_item("Latte", ("coffee", "milk"), [{"name": "Taste", "rating": 3}])
        await self._create_item("Espresso", ("coffee",), [{"name": "Taste", "rating": 5}])

        tags = (await (await self.client.get(P + "/stats/tags")).json())["items"]
        self.assertEqual(tags, [{"name": "coffee", "usage_count": 2}, {"name": "milk", "usage_count": 1}])
        criteria = (await (await self.client.get(P + "/stats/criteria", params={"limit": "1"})).json())["items"]
        self.assertEqual(criteria, [{"name": "Taste", "usage_count": 2}])

        home = await (await self.client.get(P + "/home")).json()
        self.assertEqual(len(home["items"]), 2)
        self.assertEqual(len(home["tags"]), 2)
        self.assertEqual(len(home["templates"]), 3)

    async def test_template_crud_and_draft(self):
        resp = await self.client.post(
            P + "/templates",
            json={"name": "Coffee", "tags": ["coffee"], "criteria": ["Taste", "Aroma"]},
        )
        self.assertEqual(resp.status, 201)
        template_id = (await resp.json())["id"]

        resp = await self.client.get(P + f"/templates/{template_id}")
        template = await resp.json()
        self.assertEqual(template["name"], "Coffee")
        self.assertEqual(template["tags"], [{"name": "coffee"}])

        draft = await (await self.client.get(P + f"/templates/{template_id}/draft")).json()
        self.assertEqual(
            draft,
            {
                "title": "Coffee",
                "tags": ["coffee"],
                "criteria": [{"name": "Taste", "rating": ""}, {"name": "Aroma", "rating": ""}],
            },
        )

        resp = await self.client.put(
            P + f"/templates/{template_id}",
            json={"name": "Coffee v2", "tags": ["coffee"], "criteria": ["Taste"]},
        )
        self.assertEqual(resp.status, 200)

        resp = await self.client.delete(P + f"/templates/{template_id}")
        self.assertEqual(resp.status, 200)
        resp = await self.client.get(P + f"/templates/{template_id}")
        self.assertEqual(resp.status, 404)

    async def test_missing_template_routes_return_404(self):
        self.assertEqual((await self.client.get(P + "/templates/999")).status, 404)
        self.assertEqual((await self.client.get(P + "/templates/999/draft")).status, 404)
        resp = await self.client.put(
            P + "/templates/999",
            json={"name": "Ghost", "tags": ["none"], "criteria": []},
        )
        self.assertEqual(resp.status, 404)

    async def test_export_requires_a_scope(self):
        resp = await self.client.get(P + "/export")

        self.assertEqual(resp.status, 400)

    async def test_export_sets_download_headers(self):
        await self._create_item()

        resp = await self.client.get(P + "/export", params={"items": "1", "templates": "1"})

        self.assertEqual(resp.status, 200)
        disposition = resp.headers["Content-Disposition"]
        self.assertIn('filename="export_items_templates_', disposition)
        body = json.loads(await resp.text())
        self.assertEqual(len(body["items"]), 1)
        self.assertEqual(len(body["templates"]), 3)

        resp = await self.client.get(P + "/export", params={"templates": "true"})
        body = json.loads(await resp.text())
        self.assertNotIn("items", body)

    async def test_import_from_json_body(self):
        document = {
            "items": [{"title": "Imported", "tags": ["x"], "criteria": [{"name": "Taste", "rating": 2}]}],
            "templates": [{"name": "Tea", "tags": ["tea"], "criteria": ["Aroma"]}],
        }

        resp = await self.client.post(P + "/import", json={"content": json.dumps(document)})

        self.assertEqual(resp.status, 200)
        summary = await resp.json()
        self.assertEqual((summary["items"], summary["templates"], summary["skipped"]), (1, 1, 0))
        items = (await (await self.client.get(P + "/items")).json())["items"]
        self.assertEqual([i["title"] for i in items], ["Imported"])

    async def test_import_accepts_document_object_as_content(self):
        document = {"items": [{"title": "Posted", "tags": ["z"], "criteria": [{"name": "Taste", "rating": 4.5}]}]}

        resp = await self.client.post(P + "/import", json={"content": document})

        self.assertEqual(resp.status, 200)
        self.assertEqual((await resp.json())["items"], 1)
        items = (await (await self.client.get(P + "/items")).json())["items"]
        self.assertEqual(items[0]["criteriaRatings"], [{"name": "Taste", "rating": 4.5}])

    async def test_import_from_uploaded_file(self):
        form = FormData()
        form.add_field(
            "file",
            json.dumps({"items": [{"title": "Uploaded", "tags": ["y"], "criteria": []}]}).encode("utf-8"),
            filename="export.json",
            content_type="application/json",
        )

        resp = await self.client.post(P + "/import", data=form)

        self.assertEqual(resp.status, 200)
        self.assertEqual((await resp.json())["items"], 1)

    async def test_import_rejects_malformed_documents(self):
        for content in ("{broken", "[]", '{"items": {}}'):
            with self.subTest(content=content):
                resp = await self.client.post(P + "/import", json={"content": content})
                self.assertEqual(resp.status, 400)

        items = (await (await self.client.get(P + "/items")).json())["items"]
        self.assertEqual(items, [])
