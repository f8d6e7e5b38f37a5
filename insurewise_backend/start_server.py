#!/usr/bin/env python3
"""
Start the InsureWise Backend development server
"""

import os
import sys

from insurewise_backend.app import create_app

if __name__ == '__main__':
    port = int(os.environ.get('PORT', '5000'))
    app = create_app()

    print("Starting InsureWise Backend...")
    print(f"MongoDB URI: {app.config['MONGO_URI']}")
    print(f"Server will be available at: http://localhost:{port}{app.config['API_PREFIX']}/{app.config['API_VERSION']}")
    print("Press Ctrl+C to stop the server")

    try:
        app.run(debug=app.config['APP_ENV'] == 'development', host='0.0.0.0', port=port)
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)
