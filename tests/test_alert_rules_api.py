"""Tests for alert rule endpoints."""

import pytest
from httpx import AsyncClient

RULES_URL = "/api/v1/alerts/rules"


@pytest.fixture
def rule_payload():
    return {
        "name": "Hornsea low output",
        "metric": "capacity_factor",
        "condition": "below",
        "threshold_value": 10,
        "scope": "specific_windfarm",
        "windfarm_id": 42,
        "severity": "high",
        "channels": ["in_app", "email"],
    }


def error_fields(response):
    return [detail["field"] for detail in response.json()["error"]["details"]]


async def create_rule(client, headers, payload):
    response = await client.post(RULES_URL, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_rule(client: AsyncClient, auth_headers, windfarm, rule_payload):
    data = await create_rule(client, auth_headers, rule_payload)

    assert data["name"] == "Hornsea low output"
    assert data["metric"] == "capacity_factor"
    assert data["scope"] == "specific_windfarm"
    assert data["windfarm"] == {"id": 42, "name": "Hornsea Two"}
    assert data["portfolio"] is None
    assert data["is_enabled"] is True
    assert data["sustained_minutes"] == 0
    assert data["trigger_count"] == 0


@pytest.mark.asyncio
async def test_duplicate_channels_are_collapsed(client: AsyncClient, auth_headers, windfarm, rule_payload):
    rule_payload["channels"] = ["email", "in_app", "email"]

    data = await create_rule(client, auth_headers, rule_payload)

    assert data["channels"] == ["email", "in_app"]


@pytest.mark.asyncio
async def test_create_outside_range_rule(client: AsyncClient, auth_headers, windfarm, rule_payload):
    rule_payload.update(
        {"metric": "wind_speed", "condition": "outside_range", "threshold_value": 3, "threshold_value_upper": 25}
    )

    data = await create_rule(client, auth_headers, rule_payload)

    assert data["threshold_value_upper"] == 25


@pytest.mark.parametrize(
    "changes,field",
    [
        ({"condition": "outside_range"}, "threshold_value_upper"),
        ({"condition": "outside_range", "threshold_value_upper": 5}, "threshold_value_upper"),
        ({"threshold_value_upper": 50}, "threshold_value_upper"),
        ({"windfarm_id": None}, "windfarm_id"),
        ({"windfarm_id": 999}, "windfarm_id"),
        ({"scope": "all_windfarms"}, "windfarm_id"),
        ({"scope": "portfolio"}, "portfolio_id"),
        ({"channels": []}, "channels"),
        ({"sustained_minutes": -5}, "sustained_minutes"),
        ({"metric": "sunshine"}, "metric"),
    ],
)
@pytest.mark.asyncio
async def test_invalid_rules_rejected(client: AsyncClient, auth_headers, windfarm, rule_payload, changes, field):
    rule_payload.update(changes)

    response = await client.post(RULES_URL, json=rule_payload, headers=auth_headers)

    assert response.status_code == 422
    assert field in error_fields(response)


@pytest.mark.asyncio
async def test_portfolio_scope_requires_own_portfolio(
    client: AsyncClient, auth_headers, other_auth_headers, portfolio, rule_payload
):
    rule_payload.update({"scope": "portfolio", "windfarm_id": None, "portfolio_id": portfolio.id})

    response = await client.post(RULES_URL, json=rule_payload, headers=other_auth_headers)
    assert response.status_code == 422
    assert error_fields(response) == ["portfolio_id"]

    data = await create_rule(client, auth_headers, rule_payload)
    assert data["portfolio"] == {"id": portfolio.id, "name": "North Sea"}


@pytest.mark.asyncio
async def test_list_rules(client: AsyncClient, auth_headers, other_auth_headers, windfarm, rule_payload):
    await create_rule(client, auth_headers, rule_payload)
    await create_rule(client, auth_headers, {**rule_payload, "name": "Disabled", "is_enabled": False})
    await create_rule(client, other_auth_headers, {**rule_payload, "name": "Not mine"})

    response = await client.get(RULES_URL, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert {rule["name"] for rule in data["rules"]} == {"Hornsea low output", "Disabled"}

    response = await client.get(RULES_URL, params={"is_enabled": "true"}, headers=auth_headers)
    assert [rule["name"] for rule in response.json()["rules"]] == ["Hornsea low output"]


@pytest.mark.asyncio
async def test_partial_update_keeps_other_fields(client: AsyncClient, auth_headers, windfarm, rule_payload):
    rule = await create_rule(client, auth_headers, rule_payload)

    response = await client.put(f"{RULES_URL}/{rule['id']}", json={"threshold_value": 5}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["threshold_value"] == 5
    assert data["name"] == rule_payload["name"]
    assert data["channels"] == ["in_app", "email"]
    assert data["severity"] == "high"


@pytest.mark.asyncio
async def test_update_revalidates_merged_rule(client: AsyncClient, auth_headers, windfarm, rule_payload):
    rule = await create_rule(client, auth_headers, rule_payload)

    response = await client.put(
        f"{RULES_URL}/{rule['id']}", json={"condition": "outside_range"}, headers=auth_headers
    )

    assert response.status_code == 422
    assert error_fields(response) == ["threshold_value_upper"]

    response = await client.get(f"{RULES_URL}/{rule['id']}", headers=auth_headers)
    assert response.json()["condition"] == "below"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "field",
    [
        "name",
        "metric",
        "condition",
        "threshold_value",
        "scope",
        "severity",
        "channels",
        "sustained_minutes",
        "is_enabled",
    ],
)
async def test_update_rejects_null_for_required_fields(
    client: AsyncClient, auth_headers, windfarm, rule_payload, field
):
    rule = await create_rule(client, auth_headers, rule_payload)

    response = await client.put(f"{RULES_URL}/{rule['id']}", json={field: None}, headers=auth_headers)

    assert response.status_code == 422
    assert error_fields(response) == [field]

    response = await client.get(f"{RULES_URL}/{rule['id']}", headers=auth_headers)
    assert response.json()[field] == rule[field]


@pytest.mark.asyncio
async def test_toggle_flips_or_sets(client: AsyncClient, auth_headers, windfarm, rule_payload):
    rule = await create_rule(client, auth_headers, rule_payload)
    url = f"{RULES_URL}/{rule['id']}/toggle"

    response = await client.post(url, headers=auth_headers)
    assert response.json()["is_enabled"] is False

    response = await client.patch(url, headers=auth_headers)
    assert response.json()["is_enabled"] is True

    for _ in range(2):
        response = await client.post(url, params={"enabled": "false"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["is_enabled"] is False


@pytest.mark.asyncio
async def test_delete_rule_twice(client: AsyncClient, auth_headers, windfarm, rule_payload):
    rule = await create_rule(client, auth_headers, rule_payload)

    assert (await client.delete(f"{RULES_URL}/{rule['id']}", headers=auth_headers)).status_code == 204
    assert (await client.delete(f"{RULES_URL}/{rule['id']}", headers=auth_headers)).status_code == 204

    assert (await client.get(f"{RULES_URL}/{rule['id']}", headers=auth_headers)).status_code == 404
    assert (await client.get(RULES_URL, headers=auth_headers)).json()["total"] == 0


@pytest.mark.asyncio
async def test_rules_of_other_users_are_invisible(
    client: AsyncClient, auth_headers, other_auth_headers, windfarm, rule_payload
):
    rule = await create_rule(client, auth_headers, rule_payload)
    url = f"{RULES_URL}/{rule['id']}"

    assert (await client.get(url, headers=other_auth_headers)).status_code == 404
    assert (await client.put(url, json={"name": "Hijacked"}, headers=other_auth_headers)).status_code == 404
    assert (await client.post(f"{url}/toggle", headers=other_auth_headers)).status_code == 404
    assert (await client.delete(url, headers=other_auth_headers)).status_code == 404

    response = await client.get(url, headers=auth_headers)
    assert response.json()["name"] == rule_payload["name"]


@pytest.mark.asyncio
async def test_unknown_rule_is_not_found(client: AsyncClient, auth_headers):
    response = await client.get(f"{RULES_URL}/12345", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Alert rule not found"
