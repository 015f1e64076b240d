"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

Database and demo data:

    flask --app run.py db init      # first time only
    flask --app run.py db migrate
    flask --app run.py db upgrade
    flask --app run.py seed-demo

"""

from quotemaster import create_app

# WSGI application object; `flask run` looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # Dev only; use a WSGI server in production.
    app.run(debug=True)
