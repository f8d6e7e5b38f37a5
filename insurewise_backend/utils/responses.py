"""Response envelope helpers: {status, message, data, pagination?}."""

import math

from flask import jsonify


def success_response(data=None, message='Success', status_code=200, pagination=None):
    body = {'status': 'success', 'message': message}
    if data is not None:
        body['data'] = data
    if pagination is not None:
        body['pagination'] = pagination
    return jsonify(body), status_code


def error_response(message, status_code=400, errors=None, **extra):
    body = {'status': 'error', 'message': message}
    if errors:
        body['errors'] = errors
    body.update(extra)
    return jsonify(body), status_code


def build_pagination(page, limit, total):
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if limit else 0,
    }
