#!/usr/bin/env python3
# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Artifact upload service: PUT /upload/<type>/<project>/<version>/<file>.

Installed on the host, runs under the system Python without extra packages.
Authentication is done by the reverse proxy in front of it.
"""
import datetime
import hashlib
import json
import logging
import os
import re
from http.server import BaseHTTPRequestHandler
from http.server import ThreadingHTTPServer

_logger = logging.getLogger('artifact-upload')

ARTIFACTS_DIR = os.environ.get('ARTIFACTS_DIR', '/srv/data/artifacts')
LISTEN_PORT = int(os.environ.get('ARTIFACT_API_PORT', '8081'))
MAX_FILE_SIZE = 1024 * 1024 * 1024
_segment_re = re.compile(r'[A-Za-z0-9][A-Za-z0-9_.+-]*')


class _Handler(BaseHTTPRequestHandler):

    def do_GET(self):
        if self.path == '/health':
            self._send_json(200, {'status': 'healthy'})
        else:
            self._send_json(404, {'error': 'not found'})

    def do_PUT(self):
        parts = self.path.strip('/').split('/')
        if len(parts) != 5 or parts[0] != 'upload':
            self._send_json(404, {'error': 'expected /upload/<type>/<project>/<version>/<file>'})
            return
        _, artifact_type, project, version, filename = parts
        if not all(_segment_re.fullmatch(p) for p in parts[1:]):
            self._send_json(400, {'error': 'invalid path segment'})
            return
        size = int(self.headers.get('Content-Length', '0'))
        if size > MAX_FILE_SIZE:
            self._send_json(413, {'error': 'file too large'})
            return
        target_dir = os.path.join(ARTIFACTS_DIR, artifact_type, project, version)
        os.makedirs(target_dir, exist_ok=True)
        target_file = os.path.join(target_dir, filename)
        md5 = hashlib.md5()
        sha256 = hashlib.sha256()
        remaining = size
        with open(target_file, 'wb') as f:
            while remaining > 0:
                chunk = self.rfile.read(min(remaining, 1024 * 1024))
                if not chunk:
                    break
                md5.update(chunk)
                sha256.update(chunk)
                f.write(chunk)
                remaining -= len(chunk)
        metadata = {
            'filename': filename,
            'project': project,
            'version': version,
            'type': artifact_type,
            'size': os.path.getsize(target_file),
            'uploaded_at': datetime.datetime.now(datetime.timezone.utc).isoformat(),
            'checksums': {'md5': md5.hexdigest(), 'sha256': sha256.hexdigest()},
            }
        with open(os.path.join(target_dir, 'metadata.json'), 'w') as f:
            json.dump(metadata, f, indent=2)
        for algorithm, digest in metadata['checksums'].items():
            with open(f'{target_file}.{algorithm}', 'w') as f:
                f.write(f'{digest}  {filename}\n')
        _logger.info("Stored %s", target_file)
        self._send_json(201, {
            'artifact': metadata,
            'download_url': f'/{artifact_type}/{project}/{version}/{filename}',
            })

    def _send_json(self, status, data):
        body = json.dumps(data, indent=2).encode()
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(message)s')
    server = ThreadingHTTPServer(('127.0.0.1', LISTEN_PORT), _Handler)
    _logger.info("Listening on %s", server.server_address)
    server.serve_forever()


if __name__ == '__main__':
    main()
