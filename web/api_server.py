"""
Flask API server for Entra Audit - serves audit results via REST endpoints
"""

# Standard library imports
import os
import sys
import traceback
from pathlib import Path

# Third-party imports
from flask import Flask, jsonify, request
from flask_cors import CORS
import jwt

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Local application imports
from entraAudit.analyzer.assembler import PolicyAssembler
from entraAudit.analyzer.bulk import create_role_assignments
from entraAudit.analyzer.credentials import find_expiring_credentials
from entraAudit.analyzer.query import SEARCHES, Scope, country_codes, find_by_country
from entraAudit.analyzer.role_assignments import export_role_assignments
from entraAudit.errors import PatternNotRecognizedError, SourceFetchError
from entraAudit.graph.api_client import GraphAPIClient
from entraAudit.reports.generator import to_serializable
from entraAudit.settings import AuditSettings

app = Flask(__name__)
CORS(app)

# Settings shared by all requests; per-request values override them
SETTINGS = AuditSettings()


def _client_from_request():
    """Return (client, data, error_response) for a request carrying a token in its JSON body."""
    data = request.get_json(silent=True) or {}
    token = data.get('token')

    if not token:
        return None, data, (jsonify({'error': 'No token provided'}), 400)

    client = GraphAPIClient(token, proxy=SETTINGS.proxy)
    is_valid, error_msg = client.validate_token()
    if not is_valid:
        return None, data, (jsonify({'error': f'Invalid token: {error_msg}'}), 401)

    return client, data, None


@app.route('/api/validate-token', methods=['POST'])
def validate_token():
    """Validate a Microsoft Graph access token."""
    data = request.get_json(silent=True) or {}
    token = data.get('token')

    if not token:
        return jsonify({'valid': False, 'error': 'No token provided'}), 400

    try:
        client = GraphAPIClient(token, proxy=SETTINGS.proxy)
        is_valid, error_msg = client.validate_token()

        if is_valid:
            return jsonify({'valid': True})
        else:
            return jsonify({'valid': False, 'error': error_msg}), 401
    except Exception as e:
        return jsonify({'valid': False, 'error': str(e)}), 500


@app.route('/api/extract-tenant-id', methods=['POST'])
def extract_tenant_id():
    """Extract tenant ID from JWT token without full validation."""
    data = request.get_json(silent=True) or {}
    token = data.get('token')

    if not token:
        return jsonify({'tenant_id': None, 'error': 'No token provided'}), 400

    try:
        # Decode without verification to extract tenant ID
        decoded = jwt.decode(token, options={"verify_signature": False})
        tenant_id = decoded.get('tid')

        if tenant_id:
            return jsonify({'tenant_id': tenant_id})
        else:
            return jsonify({'tenant_id': None, 'error': 'No tenant ID found in token'}), 400
    except jwt.exceptions.DecodeError as e:
        return jsonify({'tenant_id': None, 'error': f'Failed to decode token: {str(e)}'}), 400


@app.route('/api/policies', methods=['POST'])
def get_policies():
    """Assemble conditional access policies with resolved display names."""
    client, data, error = _client_from_request()
    if error:
        return error

    try:
        assembler = PolicyAssembler(client, country_table=SETTINGS.country_table(), threads=SETTINGS.threads)
        config = assembler.assemble_from_source()
        return jsonify({
            'policies': to_serializable(config.policies),
            'named_locations': to_serializable(config.named_locations),
            'count': len(config.policies)
        })
    except SourceFetchError as e:
        return jsonify({'error': str(e)}), 502
    except Exception as e:
        print(f"Error assembling policies: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/search/<by>', methods=['POST'])
def search_policies(by):
    """Search policies by group, user, app, role or country pattern."""
    if by not in SEARCHES:
        return jsonify({'error': f'Unknown search: {by}'}), 404

    data = request.get_json(silent=True) or {}
    pattern = data.get('pattern')
    if not pattern:
        return jsonify({'error': 'No pattern provided'}), 400

    try:
        scope = Scope.parse(data.get('scope', 'both'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    country_table = SETTINGS.country_table()
    if by == 'country':
        try:
            country_codes(pattern, country_table)
        except PatternNotRecognizedError as e:
            return jsonify({'error': str(e), 'pattern': e.pattern}), 400

    client, data, error = _client_from_request()
    if error:
        return error

    try:
        config = PolicyAssembler(client, country_table=country_table, threads=SETTINGS.threads).assemble_from_source()
        if by == 'country':
            matches = find_by_country(pattern, scope, config, country_table)
        else:
            matches = SEARCHES[by](pattern, scope, config)
        return jsonify({'matches': to_serializable(matches), 'count': len(matches)})
    except PatternNotRecognizedError as e:
        return jsonify({'error': str(e), 'pattern': e.pattern}), 400
    except SourceFetchError as e:
        return jsonify({'error': str(e)}), 502
    except Exception as e:
        print(f"Error searching policies: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/credentials', methods=['POST'])
def get_expiring_credentials():
    """List application credentials expiring within 'days' (default from settings)."""
    client, data, error = _client_from_request()
    if error:
        return error

    try:
        days = int(data.get('days', SETTINGS.expiry_days))
        applications = client.list_all('applications')
        credentials = find_expiring_credentials(applications, days, threads=SETTINGS.threads)
        return jsonify({'credentials': to_serializable(credentials), 'count': len(credentials)})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except SourceFetchError as e:
        return jsonify({'error': str(e)}), 502
    except Exception as e:
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/role-assignments', methods=['POST'])
def get_role_assignments():
    """Export active and eligible directory role assignments."""
    client, data, error = _client_from_request()
    if error:
        return error

    try:
        rows = export_role_assignments(client)
        return jsonify({'assignments': to_serializable(rows), 'count': len(rows)})
    except SourceFetchError as e:
        return jsonify({'error': str(e)}), 502
    except Exception as e:
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/role-assignments/create', methods=['POST'])
def post_role_assignments():
    """Create active role assignments from a list of records; returns per-record outcomes."""
    client, data, error = _client_from_request()
    if error:
        return error

    assignments = data.get('assignments')
    if not isinstance(assignments, list):
        return jsonify({'error': "'assignments' must be a list"}), 400

    summary = create_role_assignments(client, assignments)
    return jsonify({
        'succeeded': summary.succeeded,
        'failed': summary.failed,
        'results': to_serializable(summary.results)
    })


def main():
    """Main entry point for the API server"""
    # Ensure we're in the correct directory (project root)
    if not Path('entraAudit').exists():
        print("Error: Must run from project root directory")
        print("Usage: python web/api_server.py")
        sys.exit(1)

    # Start server
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('DEBUG', 'false').lower() == 'true'

    print(f"\n{'='*60}")
    print(f"Entra Audit API Server")
    print(f"{'='*60}")

    app.run(host='0.0.0.0', port=port, debug=debug)


if __name__ == '__main__':
    main()
