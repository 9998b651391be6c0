"""API tests for record endpoints and the incident workflow."""

from datetime import timedelta

import pytest

from autocontrol.models.base import utcnow

RECORDS = "/api/v1/records"


def iso(delta: timedelta = timedelta()) -> str:
    return (utcnow() + delta).isoformat()


async def create_unit(client, headers, name: str = "Camara 1") -> dict:
    response = await client.post(
        f"{RECORDS}/storage-units",
        headers=headers,
        json={"name": name, "unitType": "Cámara Frigorífica", "minTemp": 0, "maxTemp": 4},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


# ============================================================================
# Delivery Records
# ============================================================================

@pytest.mark.asyncio
async def test_delivery_crud(client, admin, admin_headers):
    created = await client.post(
        f"{RECORDS}/delivery",
        headers=admin_headers,
        json={
            "supplierId": "SUP-9",
            "productTypeId": "carne",
            "temperature": 2.5,
            "receptionDate": iso(-timedelta(hours=2)),
            "docsOk": True,
        },
    )
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["success"] is True
    assert body["message"] == "Delivery record created"
    record = body["data"]
    assert record["createdBy"] == str(admin.id)
    url = f"{RECORDS}/delivery/{record['id']}"

    fetched = await client.get(url, headers=admin_headers)
    assert fetched.json()["data"]["supplierId"] == "SUP-9"

    updated = await client.put(url, headers=admin_headers, json={"temperature": 3.0})
    assert updated.json()["data"]["temperature"] == 3.0
    assert updated.json()["data"]["docsOk"] is True, "Unset fields are left alone"

    unconfirmed = await client.delete(url, headers=admin_headers)
    assert unconfirmed.status_code == 400
    assert unconfirmed.json()["errors"][0]["field"] == "confirm"

    deleted = await client.delete(url, headers=admin_headers, params={"confirm": "true"})
    assert deleted.status_code == 200
    assert (await client.get(url, headers=admin_headers)).status_code == 404


@pytest.mark.asyncio
async def test_delivery_validation_lists_all_fields(client, admin_headers):
    response = await client.post(
        f"{RECORDS}/delivery",
        headers=admin_headers,
        json={"temperature": 500, "receptionDate": "yesterday"},
    )

    assert response.status_code == 400
    fields = {error["field"] for error in response.json()["errors"]}
    assert fields == {"supplierId", "productTypeId", "temperature", "receptionDate"}


@pytest.mark.asyncio
async def test_future_reception_date_rejected(client, admin_headers):
    response = await client.post(
        f"{RECORDS}/delivery",
        headers=admin_headers,
        json={"supplierId": "S", "productTypeId": "P", "temperature": 3, "receptionDate": iso(timedelta(days=1))},
    )

    assert response.status_code == 400
    assert response.json()["errors"] == [{"field": "receptionDate", "message": "Date cannot be in the future"}]


@pytest.mark.asyncio
async def test_date_rule_reported_with_other_field_errors(client, admin_headers):
    response = await client.post(
        f"{RECORDS}/delivery",
        headers=admin_headers,
        json={"supplierId": "S", "productTypeId": "P", "temperature": 500, "receptionDate": iso(timedelta(days=2))},
    )

    assert response.status_code == 400
    errors = {error["field"]: error["message"] for error in response.json()["errors"]}
    assert set(errors) == {"temperature", "receptionDate"}
    assert errors["receptionDate"] == "Date cannot be in the future"


@pytest.mark.asyncio
async def test_list_filters_are_validated(client, admin_headers):
    response = await client.get(
        f"{RECORDS}/delivery",
        headers=admin_headers,
        params={"docsOk": "maybe", "dateTo": "soon"},
    )

    assert response.status_code == 400
    assert {error["field"] for error in response.json()["errors"]} == {"docsOk", "dateTo"}


@pytest.mark.asyncio
async def test_list_pagination_bounds(client, admin_headers):
    assert (await client.get(f"{RECORDS}/delivery", headers=admin_headers, params={"page": 0})).status_code == 400
    assert (await client.get(f"{RECORDS}/delivery", headers=admin_headers, params={"limit": 1000})).status_code == 400

    response = await client.get(f"{RECORDS}/delivery", headers=admin_headers)
    assert response.json()["pagination"] == {"current": 1, "pages": 0, "total": 0, "limit": 20}


# ============================================================================
# Storage
# ============================================================================

@pytest.mark.asyncio
async def test_storage_records_reference_units(client, admin_headers):
    unit = await create_unit(client, admin_headers)

    record = await client.post(
        f"{RECORDS}/storage",
        headers=admin_headers,
        json={"unitId": unit["id"], "recordedAt": iso(-timedelta(minutes=10)), "temperature": 3.2, "humidity": 80},
    )
    assert record.status_code == 201, record.text

    listing = await client.get(f"{RECORDS}/storage", headers=admin_headers, params={"unitId": unit["id"]})
    assert listing.json()["pagination"]["total"] == 1

    in_use = await client.delete(f"{RECORDS}/storage-units/{unit['id']}", headers=admin_headers)
    assert in_use.status_code == 409


@pytest.mark.asyncio
async def test_storage_unit_range_checked_on_update(client, admin_headers):
    unit = await create_unit(client, admin_headers)

    response = await client.put(
        f"{RECORDS}/storage-units/{unit['id']}", headers=admin_headers, json={"minTemp": 10}
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "minTemp"


@pytest.mark.asyncio
async def test_unit_range_reported_with_other_field_errors(client, admin_headers):
    response = await client.post(
        f"{RECORDS}/storage-units",
        headers=admin_headers,
        json={"name": "C", "unitType": "Cámara Frigorífica", "minTemp": 8, "maxTemp": 2},
    )

    assert response.status_code == 400
    assert {error["field"] for error in response.json()["errors"]} == {"name", "minTemp"}


@pytest.mark.asyncio
async def test_technical_sheet_allergens(client, admin_headers):
    response = await client.post(
        f"{RECORDS}/technical-sheets",
        headers=admin_headers,
        json={
            "productName": "Tarta de queso",
            "ingredients": [
                {"name": "Queso crema", "lot": "Q-1", "isAllergen": True},
                {"name": "Azucar"},
            ],
            "shelfLife": "3 dias en refrigeracion",
        },
    )

    assert response.status_code == 201, response.text
    data = response.json()["data"]
    assert data["allergens"] == ["Queso crema"]
    assert data["ingredients"][1] == {"name": "Azucar", "lot": None, "isAllergen": False}


# ============================================================================
# Incident Workflow
# ============================================================================

@pytest.mark.asyncio
async def test_incident_workflow(client, admin, admin_headers):
    created = await client.post(
        f"{RECORDS}/incidents",
        headers=admin_headers,
        json={
            "title": "Rotura de cadena de frio",
            "description": "Camion de reparto sin refrigeracion",
            "detectionDate": iso(-timedelta(hours=5)),
            "affectedArea": "Recepcion",
            "severity": "Crítica",
        },
    )
    assert created.status_code == 201, created.text
    incident = created.json()["data"]
    assert incident["status"] == "Abierta"
    base = f"{RECORDS}/incidents/{incident['id']}"

    early = await client.post(f"{base}/resolve", headers=admin_headers)
    assert early.status_code == 409

    action = await client.post(
        f"{base}/corrective-actions",
        headers=admin_headers,
        json={"description": "Rechazar la mercancia", "implementationDate": iso()},
    )
    assert action.status_code == 201, action.text
    action_id = action.json()["data"]["id"]

    in_progress = await client.get(base, headers=admin_headers)
    assert in_progress.json()["data"]["status"] == "En Proceso"
    assert len(in_progress.json()["data"]["correctiveActions"]) == 1

    completed = await client.put(
        f"{base}/corrective-actions/{action_id}", headers=admin_headers, json={"status": "Completada"}
    )
    assert completed.json()["data"]["completedAt"] is not None

    resolved = await client.post(
        f"{base}/resolve", headers=admin_headers, json={"resolutionNotes": "Proveedor avisado"}
    )
    assert resolved.status_code == 200, resolved.text
    data = resolved.json()["data"]
    assert data["status"] == "Resuelta"
    assert data["resolvedBy"] == str(admin.id)
    assert data["resolutionNotes"] == "Proveedor avisado"

    frozen = await client.put(
        f"{base}/corrective-actions/{action_id}", headers=admin_headers, json={"description": "Cambio tardio"}
    )
    assert frozen.status_code == 409

    removed = await client.delete(f"{base}/corrective-actions/{action_id}", headers=admin_headers)
    assert removed.status_code == 200
    assert (await client.get(base, headers=admin_headers)).json()["data"]["correctiveActions"] == []


@pytest.mark.asyncio
async def test_incident_validation_lists_every_field(client, admin_headers):
    future = await client.post(
        f"{RECORDS}/incidents",
        headers=admin_headers,
        json={
            "title": "ab",
            "description": "Camara sin frio",
            "detectionDate": iso(timedelta(days=3)),
            "affectedArea": "Cocina",
        },
    )
    stale = await client.post(
        f"{RECORDS}/incidents",
        headers=admin_headers,
        json={
            "title": "Incidencia antigua",
            "description": "corta",
            "detectionDate": iso(-timedelta(days=400)),
            "affectedArea": "Cocina",
        },
    )

    assert future.status_code == 400
    assert {error["field"] for error in future.json()["errors"]} == {"title", "detectionDate"}
    assert stale.status_code == 400
    stale_errors = {error["field"]: error["message"] for error in stale.json()["errors"]}
    assert set(stale_errors) == {"description", "detectionDate"}
    assert stale_errors["detectionDate"] == "Detection date cannot be more than one year ago"


@pytest.mark.asyncio
async def test_incident_filters(client, admin_headers):
    for severity in ("Baja", "Alta"):
        response = await client.post(
            f"{RECORDS}/incidents",
            headers=admin_headers,
            json={
                "title": f"Incidencia {severity}",
                "description": "Descripcion de la incidencia",
                "detectionDate": iso(-timedelta(days=2)),
                "affectedArea": "Cocina",
                "severity": severity,
            },
        )
        assert response.status_code == 201, response.text

    high = await client.get(f"{RECORDS}/incidents", headers=admin_headers, params={"severity": "Alta"})
    assert [item["title"] for item in high.json()["data"]] == ["Incidencia Alta"]

    bad = await client.get(f"{RECORDS}/incidents", headers=admin_headers, params={"severity": "Extrema"})
    assert bad.status_code == 400
    assert bad.json()["errors"][0]["field"] == "severity"
