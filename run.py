"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

CLI commands:

    flask --app run.py db upgrade
    flask --app run.py seed-demo
    flask --app run.py flag-overdue --as-of 2024-06-30
    flask --app run.py resync-order PO-20240601-0001

"""

from purchasing import create_app

# WSGI application object for Flask to run.
app = create_app()

if __name__ == "__main__":
    # For direct `python run.py` usage (dev only); use `flask run` or a WSGI server otherwise.
    app.run(debug=True)
