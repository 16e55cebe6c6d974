from bson.objectid import ObjectId

from catalog import parse_bool


def test_parse_bool():
    assert parse_bool(True) is True
    assert parse_bool(" FALSE ") is False
    assert parse_bool("yes") is None
    assert parse_bool(None) is None


# ----------------------- Categories -----------------------
def test_category_crud(client, admin_headers):
    res = client.post("/api/categories", json={"keywords": [" Indoor ", "", "House"]}, headers=admin_headers)
    assert res.status_code == 201
    category = res.json()["category"]
    assert category["keywords"] == ["Indoor", "House"]

    res = client.put(f"/api/categories/{category['id']}", json={"keywords": ["Indoor"]}, headers=admin_headers)
    assert res.json()["category"]["keywords"] == ["Indoor"]

    listed = client.get("/api/categories").json()["categories"]
    assert [c["id"] for c in listed] == [category["id"]]

    assert client.delete(f"/api/categories/{category['id']}", headers=admin_headers).status_code == 200
    res = client.delete(f"/api/categories/{category['id']}", headers=admin_headers)
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Category not found"}


def test_category_requires_keywords(client, admin_headers):
    res = client.post("/api/categories", json={"keywords": []}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "keywords array required"


def test_category_writes_are_admin_only(client, customer_headers):
    assert client.post("/api/categories", json={"keywords": ["x"]}).status_code == 401
    res = client.post("/api/categories", json={"keywords": ["x"]}, headers=customer_headers)
    assert res.status_code == 403
    assert res.json()["message"] == "Admin only"


# ----------------------- Plants: create -----------------------
def test_create_plant_from_json_keywords(client, admin_headers, make_category):
    make_category("Indoor")
    make_category("Air Purifying")
    res = client.post(
        "/api/plants",
        json={"name": " Snake Plant ", "price": "149", "categories": "indoor, AIR PURIFYING"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    plant = res.json()["plant"]
    assert plant["name"] == "Snake Plant"
    assert plant["price"] == 149.0
    assert plant["available"] is True
    assert sorted(plant["category_names"]) == ["Air Purifying", "Indoor"]
    assert {c["keywords"][0] for c in plant["categories"]} == {"Indoor", "Air Purifying"}


def test_create_plant_from_multipart_form(client, admin_headers, make_category, store):
    indoor = make_category("Indoor")
    flowering = make_category("Flowering")
    res = client.post(
        "/api/plants",
        data={
            "name": "Peace Lily",
            "price": "129",
            "available": "false",
            "categories[1]": "flowering",
            "categories[0]": str(indoor["_id"]),
        },
        files={"image": ("lily.png", b"\x89PNG fake", "image/png")},
        headers=admin_headers,
    )
    assert res.status_code == 201
    plant = res.json()["plant"]
    assert [c["id"] for c in plant["categories"]] == [str(indoor["_id"]), str(flowering["_id"])]
    assert plant["available"] is False
    assert plant["image"] == "http://testserver/uploads/img1.png"
    assert plant["image_key"] == "img1.png"
    assert store.saved["img1.png"] == ("image/png", b"\x89PNG fake")


def test_repeated_form_fields_are_collected(client, admin_headers, make_category):
    make_category("Indoor")
    make_category("Shade")
    res = client.post(
        "/api/plants",
        data={"name": "Calathea", "price": "149", "categories[]": ["Indoor", "Shade"]},
        headers=admin_headers,
    )
    assert res.status_code == 201
    assert sorted(res.json()["plant"]["category_names"]) == ["Indoor", "Shade"]


def test_create_plant_validation(client, admin_headers, make_category):
    make_category("Indoor")
    cases = [
        ({"price": 10, "categories": "Indoor"}, "Name & price required"),
        ({"name": "Fern", "categories": "Indoor"}, "Name & price required"),
        ({"name": "Fern", "price": 0, "categories": "Indoor"}, "Price must be greater than 0"),
        ({"name": "Fern", "price": "cheap", "categories": "Indoor"}, "Price must be a number"),
    ]
    for body, message in cases:
        res = client.post("/api/plants", json=body, headers=admin_headers)
        assert res.status_code == 400, body
        assert res.json()["message"] == message


def test_create_plant_with_unknown_categories_is_rejected(client, admin_headers, db, make_category):
    make_category("Indoor")
    res = client.post("/api/plants", json={"name": "Fern", "price": 99, "categories": ["Cactus"]},
                      headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"].startswith("No valid categories provided")
    assert db["plant"].count_documents({}) == 0


def test_create_plant_is_admin_only(client, customer_headers):
    res = client.post("/api/plants", json={"name": "Fern", "price": 99}, headers=customer_headers)
    assert res.status_code == 403


# ----------------------- Plants: reads -----------------------
def test_pagination_returns_disjoint_pages(client, make_category, make_plant):
    indoor = make_category("Indoor")
    for i in range(25):
        make_plant(name=f"Plant {i:02d}", categories=[indoor["_id"]])

    first = client.get("/api/plants", params={"page": 1, "limit": 10}).json()
    second = client.get("/api/plants", params={"page": 2, "limit": 10}).json()
    third = client.get("/api/plants", params={"page": 3, "limit": 10}).json()

    assert first["total"] == 25
    assert len(first["plants"]) == 10 and len(second["plants"]) == 10 and len(third["plants"]) == 5
    ids = [p["id"] for page in (first, second, third) for p in page["plants"]]
    assert len(set(ids)) == 25
    # newest first
    assert first["plants"][0]["name"] == "Plant 24"


def test_pagination_values_are_clamped(client, make_plant):
    make_plant()
    res = client.get("/api/plants", params={"page": "-3", "limit": "1000"}).json()
    assert res["page"] == 1
    assert res["limit"] == 60
    res = client.get("/api/plants", params={"page": "abc", "limit": "xyz"}).json()
    assert (res["page"], res["limit"]) == (1, 12)


def test_search_and_availability_filters(client, make_category, make_plant):
    indoor = make_category("Indoor")
    make_plant(name="Boston Fern", categories=[indoor["_id"]])
    make_plant(name="Bird's Nest Fern", categories=[indoor["_id"]], available=False)
    make_plant(name="Rose", categories=[indoor["_id"]])

    res = client.get("/api/plants", params={"search": "fern"}).json()
    assert res["total"] == 2
    res = client.get("/api/plants", params={"search": "fern", "available": "true"}).json()
    assert [p["name"] for p in res["plants"]] == ["Boston Fern"]
    # regex characters are matched literally
    assert client.get("/api/plants", params={"search": "."}).json()["total"] == 0


def test_category_filter_by_keyword_fragment(client, make_category, make_plant):
    indoor = make_category("Indoor")
    outdoor = make_category("Outdoor")
    make_plant(name="Areca Palm", categories=[indoor["_id"]])
    make_plant(name="Hibiscus", categories=[outdoor["_id"]])

    res = client.get("/api/plants", params={"category": "INDO"}).json()
    assert [p["name"] for p in res["plants"]] == ["Areca Palm"]

    res = client.get("/api/plants", params={"category_id": str(outdoor["_id"])}).json()
    assert [p["name"] for p in res["plants"]] == ["Hibiscus"]


def test_unknown_category_gives_an_empty_page(client, make_plant):
    make_plant()
    res = client.get("/api/plants", params={"category": "nonexistent"})
    assert res.status_code == 200
    assert res.json()["plants"] == []
    assert res.json()["total"] == 0


def test_listing_shows_at_most_three_category_names(client, make_category, make_plant):
    cats = [make_category(name)["_id"] for name in ("Indoor", "Shade", "Decor", "Flowering")]
    plant = make_plant(name="Coleus", categories=cats)

    listed = client.get("/api/plants").json()["plants"][0]
    assert listed["category_names"] == ["Indoor", "Shade", "Decor"]

    single = client.get(f"/api/plants/{plant['_id']}").json()["plant"]
    assert len(single["category_names"]) == 4


def test_plant_by_category_and_missing_plants(client, make_category, make_plant):
    indoor = make_category("Indoor")
    make_plant(name="ZZ Plant", categories=[indoor["_id"]])
    make_plant(name="Rose")

    res = client.get(f"/api/plants/category/{indoor['_id']}").json()
    assert [p["name"] for p in res["plants"]] == ["ZZ Plant"]

    assert client.get(f"/api/plants/{ObjectId()}").status_code == 404
    res = client.get("/api/plants/not-an-id")
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid plant id"


def test_deleted_category_is_skipped_when_populating(client, db, make_category, make_plant):
    indoor = make_category("Indoor")
    shade = make_category("Shade")
    plant = make_plant(categories=[indoor["_id"], shade["_id"]])
    db["category"].delete_one({"_id": shade["_id"]})

    res = client.get(f"/api/plants/{plant['_id']}").json()["plant"]
    assert res["category_names"] == ["Indoor"]


# ----------------------- Plants: writes -----------------------
def test_partial_update_keeps_other_fields(client, admin_headers, make_category, make_plant):
    indoor = make_category("Indoor")
    plant = make_plant(name="Jade Plant", price=89, categories=[indoor["_id"]])

    res = client.put(f"/api/plants/{plant['_id']}", json={"price": 95}, headers=admin_headers)
    assert res.status_code == 200
    updated = res.json()["plant"]
    assert updated["price"] == 95.0
    assert updated["name"] == "Jade Plant"
    assert updated["category_names"] == ["Indoor"]


def test_update_replaces_categories(client, admin_headers, make_category, make_plant):
    indoor = make_category("Indoor")
    make_category("Succulent")
    plant = make_plant(categories=[indoor["_id"]])

    res = client.put(f"/api/plants/{plant['_id']}", json={"categories": ["succulent"]}, headers=admin_headers)
    assert res.json()["plant"]["category_names"] == ["Succulent"]

    res = client.put(f"/api/plants/{plant['_id']}", json={"categories": ["Cactus"]}, headers=admin_headers)
    assert res.status_code == 400


def test_update_missing_plant(client, admin_headers):
    res = client.put(f"/api/plants/{ObjectId()}", json={"price": 10}, headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Plant not found"


def test_set_availability(client, admin_headers, make_plant):
    plant = make_plant()
    url = f"/api/plants/{plant['_id']}/availability"

    res = client.patch(url, json={"available": "false"}, headers=admin_headers)
    assert res.json()["plant"]["available"] is False
    res = client.patch(url, json={"available": True}, headers=admin_headers)
    assert res.json()["plant"]["available"] is True

    res = client.patch(url, json={"available": "maybe"}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "available is required"


def test_delete_plant_removes_its_image(client, admin_headers, db, make_plant, store):
    plant = make_plant()
    db["plant"].update_one({"_id": plant["_id"]}, {"$set": {"image_key": "img9.png"}})

    assert client.delete(f"/api/plants/{plant['_id']}", headers=admin_headers).status_code == 200
    assert store.deleted == ["img9.png"]
    assert db["plant"].count_documents({}) == 0


def test_delete_plant_survives_image_store_failure(client, admin_headers, db, make_plant, store):
    plant = make_plant()
    db["plant"].update_one({"_id": plant["_id"]}, {"$set": {"image_key": "img9.png"}})
    store.fail_delete = True

    res = client.delete(f"/api/plants/{plant['_id']}", headers=admin_headers)
    assert res.status_code == 200
    assert db["plant"].find_one({"_id": plant["_id"]}) is None


def test_new_upload_replaces_the_old_image(client, admin_headers, db, make_plant, store):
    plant = make_plant()
    db["plant"].update_one({"_id": plant["_id"]}, {"$set": {"image_key": "img9.png"}})

    res = client.put(
        f"/api/plants/{plant['_id']}",
        data={"name": "Fern"},
        files={"image": ("fern.webp", b"RIFF fake", "image/webp")},
        headers=admin_headers,
    )
    assert res.status_code == 200
    assert res.json()["plant"]["image_key"] == "img1.png"
    assert store.deleted == ["img9.png"]


def test_upload_to_missing_plant_stores_nothing(client, admin_headers, store):
    res = client.put(
        f"/api/plants/{ObjectId()}",
        data={"name": "Ghost"},
        files={"image": ("ghost.png", b"\x89PNG fake", "image/png")},
        headers=admin_headers,
    )
    assert res.status_code == 404
    assert store.saved == {}


def test_keyword_belongs_to_one_category(client, admin_headers, db):
    first = client.post("/api/categories", json={"keywords": ["Indoor", "House"]}, headers=admin_headers)
    other = client.post("/api/categories", json={"keywords": ["Outdoor"]}, headers=admin_headers)

    res = client.post("/api/categories", json={"keywords": ["House", "Shade"]}, headers=admin_headers)
    assert res.status_code == 409
    assert res.json()["message"] == "Category keyword already exists"
    assert db["category"].count_documents({}) == 2

    url = f"/api/categories/{other.json()['category']['id']}"
    assert client.put(url, json={"keywords": ["Indoor"]}, headers=admin_headers).status_code == 409

    url = f"/api/categories/{first.json()['category']['id']}"
    res = client.put(url, json={"keywords": ["Indoor", "Tropical"]}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["category"]["keywords"] == ["Indoor", "Tropical"]
