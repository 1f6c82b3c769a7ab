"""
peo_portal/services

Domain operations. Each public create/update/delete runs in one transaction
(db_utils.atomic) and returns the plain result shapes used by the JSON layer.
"""
