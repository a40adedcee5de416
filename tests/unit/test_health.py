"""Test health endpoint"""


def test_health_check(client):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code in [200, 503]
    data = response.json()
    assert "status" in data
    assert "dependencies" in data
    assert data["dependencies"]["database"] == "connected"
    assert data["dependencies"]["qdrant"] == "connected"


def test_root(client):
    """Root endpoint reports the app"""
    response = client.get("/")
    assert response.status_code == 200
    assert "version" in response.json()
