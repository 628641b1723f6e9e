from waitress import serve
from api_server import app, limit_table
import os

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    host = os.environ.get("HOST", "0.0.0.0")

    print("="*60)
    print("  FTL Compliance Engine - Production Server")
    print("="*60)
    print(f"  [*] Serving on http://{host}:{port}")
    print(f"  [*] Limits: {len(limit_table)} configured")
    print(f"  [*] Mode: Production (Waitress)")
    print("="*60)

    serve(app, host=host, port=port)
