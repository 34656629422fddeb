from loanspur import create_app, list_routes

app = create_app()

if __name__ == "__main__":
    list_routes(app)
    app.run(debug=app.config.get("ENABLE_DEBUG_LOGGING", False))
