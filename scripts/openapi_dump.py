# FILE: scripts/openapi_dump.py
# Usage: python scripts/openapi_dump.py                 (schema of a fresh in-process app)
#        python scripts/openapi_dump.py http://127.0.0.1:8000/openapi.json
#        (against a server started with RISKWIZ_HTTP_ENABLE_DOCS=1)
import json, sys

if len(sys.argv) > 1:
    import httpx
    doc = httpx.get(sys.argv[1], timeout=10.0).raise_for_status().json()
else:
    from riskwiz.service_http import create_app
    doc = create_app(configure_logging=False).openapi()
print(json.dumps(doc, indent=2, ensure_ascii=False))
