#!/usr/bin/env python3
"""
Entry point for the Ratings API.

Usage:
    python run.py                    # Run the API server

Environment Variables:
    FLASK_ENV: development or production (default: development)
    PORT: Port to run on (default: 5600)
    DATABASE_URL: SQLAlchemy database URL
    SUPABASE_JWT_SECRET: Secret used to verify bearer tokens
"""
import os


def run_api():
    """Run the API server."""
    from ratings_api.app import create_app
    
    config_name = os.getenv('FLASK_ENV', 'development')
    app = create_app(config_name)
    port = int(os.getenv('PORT', 5600))
    debug = config_name == 'development'
    
    print(f"Starting Ratings API on port {port}...")
    app.run(host='0.0.0.0', port=port, debug=debug)


if __name__ == '__main__':
    run_api()
