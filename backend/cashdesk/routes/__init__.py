# Overview: Shared JSON error rendering for the route modules.

from flask import jsonify

from ..errors import CashdeskError


def error_response(exc: CashdeskError):
    return jsonify(exc.to_dict()), exc.status_code
