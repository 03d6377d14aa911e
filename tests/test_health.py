from tests.conftest import FailingStore


def test_liveness(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness(client):
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["store"] == "ok"


def test_readiness_without_store(make_client):
    response = make_client(store_override=FailingStore()).get("/health/ready")
    assert response.status_code == 503
    assert response.json()["store"] == "unavailable"


def test_root(client):
    assert client.get("/").json()["health"] == "/health"
