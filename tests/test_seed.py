from seed import DEMO_CATEGORIES, DEMO_PLANTS, seed


def test_seed_is_idempotent(db):
    first = seed(db)
    assert first == {"categories": len(DEMO_CATEGORIES), "plants": len(DEMO_PLANTS), "admin": True}
    assert seed(db) == {"categories": 0, "plants": 0, "admin": False}
    assert db["plant"].count_documents({}) == len(DEMO_PLANTS)


def test_seeded_catalog_is_browsable(client, db):
    seed(db)
    res = client.get("/api/plants", params={"category": "succulent", "limit": 60}).json()
    assert {p["name"] for p in res["plants"]} == {"Snake Plant", "Aloe Vera", "Jade Plant"}

    admin = db["user"].find_one({"is_admin": True})
    assert admin["is_verified"] is True


def test_health_without_database(client):
    res = client.get("/api/health").json()
    assert res["ok"] is True
    assert res["database"] == "Not Connected"
