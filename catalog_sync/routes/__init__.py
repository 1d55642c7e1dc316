from flask import current_app


def get_engine():
    return current_app.extensions["catalog_sync"]["engine"]


def get_settings():
    return current_app.extensions["catalog_sync"]["settings"]
