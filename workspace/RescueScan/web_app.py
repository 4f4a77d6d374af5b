#!/usr/bin/env python3
"""
RescueScan Web Interface
JSON endpoints that let a UI drive a conflict scan one step at a time.
"""

from typing import Optional

from flask import Flask, request, jsonify
from flask_cors import CORS

from config import Config
from scan_manager import ScanManager


def _status_code(result: dict) -> int:
    error = result.get('error') or ''
    if error.startswith('Not part of this scan'):
        return 404
    if 'error' in result and not result.get('success', False):
        return 400
    return 200


def create_app(config: Optional[Config] = None, manager: Optional[ScanManager] = None) -> Flask:
    """Build the Flask app around one scan manager"""
    config = config or (manager.config if manager else Config.from_env())
    scan_manager = manager or ScanManager(config)

    app = Flask(__name__)
    CORS(app)
    app.config['SCAN_MANAGER'] = scan_manager

    @app.route('/api/scan/plugins')
    def get_plugins():
        """Components that a scan would probe"""
        result = scan_manager.list_components()
        if not result.get('success'):
            return jsonify({'error': result['error']}), 503
        return jsonify(result['components'])

    @app.route('/api/scan/start', methods=['POST'])
    def start_scan():
        """Snapshot and disable everything (only one scan allowed at a time)"""
        data = request.get_json(silent=True) or {}
        mode = request.args.get('mode') or data.get('mode')
        skip = data.get('skip')
        if skip is not None and not isinstance(skip, list):
            return jsonify({'error': 'skip must be a list of component files'}), 400

        result = scan_manager.start_scan(mode=mode, skip=skip)
        if 'error' in result:
            code = 409 if 'current_scan_id' in result else 400
            if result.get('status') == 'errored':
                code = 500
            return jsonify(result), code
        return jsonify(result)

    @app.route('/api/scan/test', methods=['POST'])
    def test_plugin():
        """Probe a single component"""
        data = request.get_json(silent=True) or {}
        file = data.get('file')
        if not file:
            return jsonify({'status': 'error', 'message': 'No file provided'}), 400

        result = scan_manager.probe(file, mode=data.get('mode'))
        if result.get('state') == 'errored':
            return jsonify(result), 500
        return jsonify(result), _status_code(result)

    @app.route('/api/scan/analyze', methods=['POST'])
    def analyze():
        """Natural-language diagnosis of the conflicts"""
        data = request.get_json(silent=True) or {}
        conflicts = data.get('conflicts')
        if conflicts is not None:
            if not isinstance(conflicts, list) or not all(isinstance(c, dict) for c in conflicts):
                return jsonify({'error': 'conflicts must be a list of {name, error} objects'}), 400

        result = scan_manager.analyze(conflicts)
        if 'error' in result:
            return jsonify(result), 400
        return jsonify(result['diagnosis'])

    @app.route('/api/scan/restore', methods=['POST'])
    def restore_plugins():
        """Restore the pre-scan state, leaving excluded components disabled"""
        data = request.get_json(silent=True) or {}
        exclude = data.get('exclude')
        if exclude is not None and not isinstance(exclude, list):
            return jsonify({'error': 'exclude must be a list of component files'}), 400

        result = scan_manager.restore(exclude)
        if result.get('state') == 'errored':
            return jsonify(result), 500
        if 'error' in result and 'success' not in result:
            return jsonify(result), 400
        return jsonify(result)

    @app.route('/api/scan/status')
    def scan_status_api():
        """Get current scan status"""
        return jsonify(scan_manager.get_current_status())

    @app.route('/api/scan/history')
    def scan_history_api():
        """Get scan history"""
        scans = scan_manager.scan_history.get_all_scans()
        return jsonify({
            'scans': [
                {
                    'scan_id': scan.scan_id,
                    'timestamp': scan.timestamp,
                    'scope': scan.scope,
                    'mode': scan.mode,
                    'status': scan.status,
                    'conflicts': scan.conflict_files,
                    'error': scan.error,
                    'scan_duration': scan.scan_duration,
                    'report_files': scan.report_files,
                }
                for scan in scans
            ],
            'total_scans': len(scans),
        })

    @app.route('/api/scan/suspects')
    def suspects():
        """Components mentioned by recent stack traces"""
        return jsonify(scan_manager.suspects())

    @app.route('/api/generate-email', methods=['POST'])
    def generate_email():
        """Developer email draft about the detected conflicts"""
        data = request.get_json(silent=True) or {}
        return jsonify(scan_manager.draft_email(str(data.get('issue') or '')))

    return app


if __name__ == '__main__':
    app = create_app()

    print("🌐 Starting RescueScan Web Interface...")
    print("🔌 Components: http://localhost:5000/api/scan/plugins")

    app.run(host='0.0.0.0', port=5000, debug=False)
