"""
peo_portal/blueprints

JSON endpoints, one package per area. Request bodies are camelCase JSON objects;
responses render Decimal money as strings and dates as ISO strings.
"""
