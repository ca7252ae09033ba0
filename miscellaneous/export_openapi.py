#!/usr/bin/env python3
"""
Export the OpenAPI specification of the Parlomo API to ``openapi.json``.
"""

import json
import sys

from parlomo_platform.main import app


def export_openapi_spec(output_file: str = "openapi.json") -> bool:
    try:
        openapi_schema = app.openapi()
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(openapi_schema, f, indent=2, ensure_ascii=False)
    except (OSError, TypeError, ValueError) as e:
        print(f"Failed to export OpenAPI specification: {e}")
        return False

    paths = openapi_schema.get("paths", {})
    print(f"OpenAPI specification exported to: {output_file}")
    print(f"API title: {openapi_schema.get('info', {}).get('title', 'unknown')}")
    print(f"Total endpoints: {sum(len(methods) for methods in paths.values())}")
    for path in sorted(paths):
        print(f"  {path}: {', '.join(method.upper() for method in paths[path])}")
    return True


if __name__ == "__main__":
    output = sys.argv[1] if len(sys.argv) > 1 else "openapi.json"
    if not export_openapi_spec(output):
        sys.exit(1)
