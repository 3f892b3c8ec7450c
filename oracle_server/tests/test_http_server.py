import unittest
from unittest.mock import patch

import numpy as np
from fastapi.testclient import TestClient

from oracle_database import SimulationStore, create_db_engine, create_session_factory, init_db
from oracle_internal.monte_carlo import SimulationService
from oracle_server.http_server import ServerSettings, create_app

SCOPE = {
    "tasks": [
        {"id": "t1", "estimated_effort": 3, "complexity": "MEDIUM"},
        {"id": "t2", "estimated_effort": 1, "complexity": "HIGH"},
    ],
    "target_budget_or_time": 60,
}


def build_client(api_key=None):
    engine = create_db_engine("sqlite://")
    init_db(engine)
    store = SimulationStore(create_session_factory(engine))
    team_id = store.create_team("platform", volatility_factor=0.2, team_id="team-1")
    service = SimulationService(store=store, random_source=np.random.default_rng(7), iterations=2000)
    app = create_app(service=service, settings=ServerSettings(api_key=api_key))
    return TestClient(app), store, team_id


class TestSimulationEndpoints(unittest.TestCase):

    def setUp(self):
        self.client, self.store, self.team_id = build_client()

    def test_run_simulation(self):
        response = self.client.post("/simulations", json={"team_id": self.team_id, "scope": SCOPE})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["iterations"], 2000)
        self.assertEqual(len(body["distribution"]), 100)
        self.assertLessEqual(body["p50"], body["p90"])
        self.assertIsNone(body["run_id"])
        self.assertEqual(body["volatility_factor_used"], 0.2)

    def test_run_simulation_persists_run(self):
        response = self.client.post(
            "/simulations",
            json={"team_id": self.team_id, "scope": SCOPE, "budget_request_id": "br-1"},
        )
        self.assertEqual(response.status_code, 200)
        run_id = response.json()["run_id"]
        self.assertIsNotNone(run_id)

        run = self.client.get(f"/simulation-runs/{run_id}")
        self.assertEqual(run.status_code, 200)
        self.assertEqual(run.json()["state"], "CREATED")
        self.assertEqual(run.json()["budget_request_id"], "br-1")

    def test_duplicate_budget_request(self):
        payload = {"team_id": self.team_id, "scope": SCOPE, "budget_request_id": "br-1"}
        self.assertEqual(self.client.post("/simulations", json=payload).status_code, 200)
        response = self.client.post("/simulations", json=payload)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"]["code"], "ALREADY_EXISTS")

    def test_unknown_team_with_budget_request(self):
        response = self.client.post(
            "/simulations",
            json={"team_id": "ghost", "scope": SCOPE, "budget_request_id": "br-2"},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["code"], "NOT_FOUND")

    def test_invalid_scope(self):
        bad_scope = {"tasks": [{"estimated_effort": -1, "complexity": "LOW"}], "target_budget_or_time": 10}
        response = self.client.post("/simulations", json={"team_id": self.team_id, "scope": bad_scope})
        self.assertEqual(response.status_code, 422)
        bad_scope = {"tasks": [{"estimated_effort": 1, "complexity": "EXTREME"}], "target_budget_or_time": 10}
        response = self.client.post("/simulations", json={"team_id": self.team_id, "scope": bad_scope})
        self.assertEqual(response.status_code, 422)

    def test_complexity_is_case_insensitive(self):
        scope = {"tasks": [{"estimated_effort": 2, "complexity": " high"}], "target_budget_or_time": 30}
        response = self.client.post("/simulations", json={"team_id": self.team_id, "scope": scope})
        self.assertEqual(response.status_code, 200)

    def test_revenue_simulation(self):
        response = self.client.post(
            "/simulations/revenue",
            json={"deals": [{"amount": 50000, "probability": 1.0}], "volatility_factor": 0},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["p50"], 50000.0)
        self.assertEqual(body["p99"], 50000.0)
        self.assertEqual(body["probability_of_success"], 1.0)

    def test_revenue_rejects_bad_probability(self):
        response = self.client.post(
            "/simulations/revenue",
            json={"deals": [{"amount": 100, "probability": 1.5}], "volatility_factor": 0.1},
        )
        self.assertEqual(response.status_code, 422)

    def test_revenue_rejects_non_finite_numbers(self):
        bodies = (
            '{"deals": [{"amount": 50000, "probability": 1.0}], "volatility_factor": Infinity}',
            '{"deals": [{"amount": 50000, "probability": 1.0}], "volatility_factor": NaN}',
            '{"deals": [{"amount": Infinity, "probability": 1.0}], "volatility_factor": 0.1}',
            '{"deals": [], "volatility_factor": 0.1, "target_revenue": Infinity}',
        )
        for body in bodies:
            response = self.client.post(
                "/simulations/revenue", content=body, headers={"Content-Type": "application/json"}
            )
            self.assertEqual(response.status_code, 422, body)


class TestCalibrationEndpoints(unittest.TestCase):

    def setUp(self):
        self.client, self.store, self.team_id = build_client()
        response = self.client.post(
            "/simulations",
            json={"team_id": self.team_id, "scope": SCOPE, "budget_request_id": "br-1"},
        )
        self.run = response.json()

    def test_calibrate(self):
        actual = self.run["p90"] + 50
        response = self.client.post(
            f"/simulation-runs/{self.run['run_id']}/calibrate", json={"actual_duration": actual}
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["signal"], "UNDERESTIMATED")
        self.assertAlmostEqual(body["new_factor"], 0.204)
        self.assertAlmostEqual(self.store.get_team_volatility(self.team_id), 0.204)

        run = self.client.get(f"/simulation-runs/{self.run['run_id']}").json()
        self.assertEqual(run["state"], "CALIBRATED")
        self.assertTrue(run["calibration_applied"])

    def test_calibrate_twice(self):
        url = f"/simulation-runs/{self.run['run_id']}/calibrate"
        self.assertEqual(self.client.post(url, json={"actual_duration": 10}).status_code, 200)
        response = self.client.post(url, json={"actual_duration": 10})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"]["code"], "ALREADY_CALIBRATED")

    def test_calibrate_unknown_run(self):
        response = self.client.post("/simulation-runs/missing/calibrate", json={"actual_duration": 10})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["code"], "NOT_FOUND")

    def test_get_unknown_run(self):
        self.assertEqual(self.client.get("/simulation-runs/missing").status_code, 404)

    def test_negative_actual(self):
        response = self.client.post(
            f"/simulation-runs/{self.run['run_id']}/calibrate", json={"actual_duration": -5}
        )
        self.assertEqual(response.status_code, 422)


class TestApiKey(unittest.TestCase):

    def setUp(self):
        self.client, _, self.team_id = build_client(api_key="secret")
        self.payload = {"deals": [{"amount": 10, "probability": 0.5}], "volatility_factor": 0.1}

    def test_public_paths(self):
        response = self.client.get("/healthcheck")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")
        self.assertTrue(response.json()["api_key_configured"])
        root = self.client.get("/")
        self.assertEqual(root.status_code, 200)
        self.assertEqual(root.json()["calibration"]["learning_rate"], 0.1)

    def test_missing_key(self):
        self.assertEqual(self.client.post("/simulations/revenue", json=self.payload).status_code, 401)

    def test_wrong_key(self):
        response = self.client.post(
            "/simulations/revenue", json=self.payload, headers={"X-API-Key": "nope"}
        )
        self.assertEqual(response.status_code, 403)

    def test_accepted_key_locations(self):
        for kwargs in (
            {"headers": {"Authorization": "Bearer secret"}},
            {"headers": {"X-API-Key": "secret"}},
            {"params": {"api_key": "secret"}},
        ):
            response = self.client.post("/simulations/revenue", json=self.payload, **kwargs)
            self.assertEqual(response.status_code, 200, kwargs)


class TestSettings(unittest.TestCase):

    def test_from_env(self):
        env = {
            "ORACLE_DATABASE_URL": "sqlite:///tmp.db",
            "ORACLE_API_KEY": "k",
            "ORACLE_HTTP_PORT": "9000",
            "ORACLE_CORS_ORIGINS": "http://a, http://b",
            "ORACLE_SIM_WORKERS": "2",
            "ORACLE_SIM_TIMEOUT_SECONDS": "1.5",
        }
        with patch.dict("os.environ", env, clear=True):
            settings = ServerSettings.from_env()
        self.assertEqual(settings.database_url, "sqlite:///tmp.db")
        self.assertEqual(settings.api_key, "k")
        self.assertEqual(settings.port, 9000)
        self.assertEqual(settings.cors_origins, ["http://a", "http://b"])
        self.assertEqual(settings.num_workers, 2)
        self.assertEqual(settings.default_timeout_seconds, 1.5)

    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = ServerSettings.from_env()
        self.assertEqual(settings.database_url, "sqlite:///oracle.db")
        self.assertIsNone(settings.api_key)
        self.assertEqual(settings.port, 8010)
        self.assertIsNone(settings.default_timeout_seconds)


if __name__ == "__main__":
    unittest.main()
