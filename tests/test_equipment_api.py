EQUIPMENT = "/api/v1/equipment"


async def test_equipment_crud_cycle(client):
    created = await client.post(f"{EQUIPMENT}/", json={"description": "Projector", "observations": "HDMI only"})
    assert created.status_code == 201
    equipment = created.json()
    assert equipment["code"].startswith("EQ-")
    assert equipment["status"] == "available"

    fetched = await client.get(f"{EQUIPMENT}/{equipment['id']}")
    assert fetched.json()["description"] == "Projector"

    updated = await client.put(f"{EQUIPMENT}/{equipment['id']}", json={"status": "maintenance"})
    assert updated.status_code == 200
    assert updated.json()["status"] == "maintenance"
    assert updated.json()["observations"] == "HDMI only"

    deleted = await client.delete(f"{EQUIPMENT}/{equipment['id']}")
    assert deleted.json() == {"message": "Equipment deleted"}

    gone = await client.get(f"{EQUIPMENT}/{equipment['id']}")
    assert gone.status_code == 404
    assert gone.json() == {"message": "Equipment not found", "kind": "not_found"}


async def test_equipment_list_sorted_by_code(client):
    for code in ("EQ-B", "EQ-A"):
        await client.post(f"{EQUIPMENT}/", json={"code": code, "description": f"Item {code}"})

    response = await client.get(f"{EQUIPMENT}/")

    assert [e["code"] for e in response.json()] == ["EQ-A", "EQ-B"]


async def test_equipment_validation(client):
    await client.post(f"{EQUIPMENT}/", json={"code": "EQ-1", "description": "Laptop"})

    duplicate = await client.post(f"{EQUIPMENT}/", json={"code": "EQ-1", "description": "Another laptop"})
    missing = await client.post(f"{EQUIPMENT}/", json={"code": "EQ-2"})
    bad_id = await client.get(f"{EQUIPMENT}/123")

    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "Equipment code 'EQ-1' already exists."
    assert missing.status_code == 400
    assert bad_id.status_code == 400


async def test_equipment_empty_update_rejected(client):
    created = (await client.post(f"{EQUIPMENT}/", json={"description": "Tripod"})).json()

    response = await client.put(f"{EQUIPMENT}/{created['id']}", json={})

    assert response.status_code == 400
    assert response.json()["message"] == "No update data provided."
