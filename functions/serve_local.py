#!/usr/bin/env python3
"""Local development server for the Takeoff measurement functions.

Mimics the Firebase Functions emulator URL layout so the web client can
point at a plain Flask process while iterating on handlers.

Usage:
    cd functions
    source venv/bin/activate
    python serve_local.py

Every HTTP function in main.py is served at
POST /{project}/us-central1/{function_name}.
"""

import os

# Set environment for local development
os.environ.setdefault('FUNCTIONS_EMULATOR', 'true')
os.environ.setdefault('GCLOUD_PROJECT', 'takeoff-dev')
os.environ.setdefault('FIRESTORE_EMULATOR_HOST', '127.0.0.1:8081')

from flask import Flask, request, jsonify
from flask_cors import CORS

# Import the main module after setting env vars
import main

HANDLERS = {
    "save_measurement": main._save_measurement_async,
    "list_measurements": main._list_measurements_async,
    "link_measurement": main._link_measurement_async,
    "create_takeoff_from_measurement": main._create_takeoff_async,
    "delete_measurement": main._delete_measurement_async,
    "compute_measurement": main._compute_measurement_async,
    "calibrate_scale": main._calibrate_scale_async,
    "variance_report": main._variance_report_async,
    "qa_report": main._qa_report_async,
}

app = Flask(__name__)
CORS(app)


class LocalRequest:
    """Firebase-style request object wrapping the Flask request."""

    def __init__(self, flask_request):
        self._request = flask_request
        self._json_data = None
        self.method = flask_request.method
        self.headers = dict(flask_request.headers)

    def get_json(self, force=False):
        if self._json_data is None:
            self._json_data = self._request.get_json(force=force) or {}
        return self._json_data


def dispatch(function_name: str):
    """Run the named handler through main._handle and relay its response."""
    handler = HANDLERS[function_name]
    response = main._handle(LocalRequest(request), function_name, handler)
    return response.get_data(), response.status_code, dict(response.headers)


def _register(project: str) -> None:
    for name in HANDLERS:
        app.add_url_rule(
            f"/{project}/us-central1/{name}",
            endpoint=name,
            view_func=lambda name=name: dispatch(name),
            methods=["POST", "OPTIONS"],
        )


_register(os.environ["GCLOUD_PROJECT"])


@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'service': 'takeoff-functions'})


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5002))
    print(f"Takeoff functions serving on http://127.0.0.1:{port}/{os.environ['GCLOUD_PROJECT']}/us-central1/<function>")
    app.run(host='127.0.0.1', port=port, debug=True, threaded=True)
