from __future__ import annotations

import os
from collections.abc import Mapping

from flask import Flask, jsonify, request

from analysis.config import ColumnConfig, PipelineLimits
from analysis.sankey_flow import build_comparison, build_sankey, get_unique_values

# Optional env overrides
MAX_ROWS = int(os.environ.get("SANKEY_MAX_ROWS", "200000"))
HOST = os.environ.get("SANKEY_HOST", "0.0.0.0")
PORT = int(os.environ.get("SANKEY_PORT", "8000"))

app = Flask(__name__)


class RequestError(ValueError):
    pass


def get_limits() -> PipelineLimits:
    return PipelineLimits(max_rows=MAX_ROWS if MAX_ROWS > 0 else None)


def _read_rows(body: dict) -> list:
    rows = body.get('rows')
    if not isinstance(rows, list):
        raise RequestError("'rows' must be a list of objects")
    if not all(isinstance(row, Mapping) for row in rows):
        raise RequestError("every entry in 'rows' must be an object")
    return rows


def _read_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise RequestError('Request body must be a JSON object')
    return body


def _read_config(body: dict) -> ColumnConfig:
    raw = body.get('config') or {}
    if not isinstance(raw, Mapping):
        raise RequestError("'config' must be an object")
    return ColumnConfig.from_mapping(raw)


@app.errorhandler(RequestError)
def handle_request_error(exc: RequestError):
    return jsonify({'error': str(exc)}), 400


@app.get('/health')
def health():
    return jsonify({'status': 'ok'})


@app.post('/sankey')
def sankey_endpoint():
    body = _read_body()
    rows = _read_rows(body)
    config = _read_config(body)
    graph = build_sankey(rows, config, get_limits())
    if request.args.get('format') == 'highcharts':
        return jsonify({'series': [graph.to_highcharts()]})
    return jsonify(graph.to_payload())


@app.post('/sankey/compare')
def sankey_compare_endpoint():
    body = _read_body()
    rows = _read_rows(body)
    config = _read_config(body)
    graphs = build_comparison(rows, config, get_limits())
    return jsonify({name: graph.to_payload() for name, graph in graphs.items()})


@app.post('/unique-values')
def unique_values_endpoint():
    body = _read_body()
    rows = _read_rows(body)
    column = body.get('column')
    if not isinstance(column, str) or not column:
        raise RequestError("'column' must be a non-empty string")
    return jsonify({'values': get_unique_values(rows, column)})


if __name__ == '__main__':
    app.run(host=HOST, port=PORT, debug=True)
