"""Tests for tree endpoints: flat data, built hierarchy, figure, fetch errors."""
from familytree import main


def _person(client, first, last="Smith", **extra):
    return client.post("/api/individuals",
                       json={"first_name": first, "last_name": last, **extra}).json()


def _child(client, parent, kid):
    return client.post("/api/relationships", json={
        "individual_id": parent["id"], "related_individual_id": kid["id"],
        "relationship_type": "child",
    })


class TestFlatData:
    def test_individuals_sorted(self, auth_client):
        _person(auth_client, "Zed", "Brown")
        _person(auth_client, "Amy", "Brown")
        _person(auth_client, "Bob", "Adams")
        names = [(p["last_name"], p["first_name"])
                 for p in auth_client.get("/api/tree/individuals").json()]
        assert names == [("Adams", "Bob"), ("Brown", "Amy"), ("Brown", "Zed")]

    def test_relationships_shape(self, auth_client):
        a, b = _person(auth_client, "A"), _person(auth_client, "B")
        rel = _child(auth_client, a, b).json()
        edges = auth_client.get("/api/tree/relationships").json()
        assert edges == [{"id": rel["id"], "source": a["id"], "target": b["id"], "type": "child"}]

    def test_requires_auth(self, client):
        assert client.get("/api/tree/individuals").status_code == 401
        assert client.get("/api/tree").status_code == 401


class TestTree:
    def test_empty_dataset(self, auth_client):
        resp = auth_client.get("/api/tree")
        assert resp.status_code == 200
        assert resp.json() == {"root_id": None, "tree": None, "cycles": []}

    def test_root_and_children(self, auth_client):
        # Sorted by name the children come first; root inference still finds the parent.
        kid_b = _person(auth_client, "Beth", "Adams")
        kid_a = _person(auth_client, "Carl", "Adams")
        parent = _person(auth_client, "Paul", "Young")
        _child(auth_client, parent, kid_a)
        _child(auth_client, parent, kid_b)
        data = auth_client.get("/api/tree").json()
        assert data["root_id"] == parent["id"]
        kids = data["tree"]["children"]
        assert [k["individual"]["id"] for k in kids] == [kid_a["id"], kid_b["id"]]
        assert all(k["depth"] == 1 and k["children"] == [] for k in kids)

    def test_no_edges_root_is_first_in_order(self, auth_client):
        _person(auth_client, "Zed", "Young")
        first = _person(auth_client, "Amy", "Adams")
        data = auth_client.get("/api/tree").json()
        assert data["root_id"] == first["id"]
        assert data["tree"]["children"] == []

    def test_collapsed_and_selected(self, auth_client):
        parent = _person(auth_client, "Paul")
        kid = _person(auth_client, "Kid")
        _child(auth_client, parent, kid)
        data = auth_client.get("/api/tree", params={
            "collapsed": [parent["id"]], "selected": kid["id"],
        }).json()
        assert data["tree"]["is_expanded"] is False
        assert data["tree"]["children"][0]["is_expanded"] is True
        assert data["tree"]["children"][0]["is_selected"] is True


class TestFigure:
    def test_figure_json(self, auth_client):
        parent = _person(auth_client, "Paul")
        kid = _person(auth_client, "Kid", is_alive=False)
        _child(auth_client, parent, kid)
        resp = auth_client.get("/api/tree/figure")
        assert resp.status_code == 200
        fig = resp.json()
        node_trace = fig["data"][1]
        assert sorted(node_trace["text"]) == ["Kid Smith", "Paul Smith"]

    def test_empty_figure(self, auth_client):
        fig = auth_client.get("/api/tree/figure").json()
        assert fig["layout"]["title"]["text"] == "No family data found"


class TestFetchError:
    def test_store_failure_reported(self, auth_client, monkeypatch):
        def broken(conn):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(main.individuals, "list_individuals", broken)
        resp = auth_client.get("/api/tree")
        assert resp.status_code == 503
        assert resp.json()["detail"] == "Could not load tree data"
