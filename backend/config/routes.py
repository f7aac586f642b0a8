from routes.boq_routes import boq_routes

# Import and register the routes from the route blueprints

def initialize_routes(app):
    app.register_blueprint(boq_routes)
