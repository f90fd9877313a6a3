# routes/__init__.py
"""
Blueprint registration helper
"""

def register_blueprints(app):
    """Register all application blueprints"""
    from routes.health import health_bp
    from routes.recommendations import recommendations_bp
    from routes.favorites import favorites_bp
    from routes.realtime import realtime_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(recommendations_bp)
    app.register_blueprint(favorites_bp)
    app.register_blueprint(realtime_bp)
