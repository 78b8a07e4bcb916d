# FILE: ipd_billing/api/router.py
from fastapi import APIRouter

from ipd_billing.api import routes_ipd_bills, routes_ipd_deposits

api_router = APIRouter()

# IPD
api_router.include_router(routes_ipd_bills.router)
api_router.include_router(routes_ipd_deposits.router)
