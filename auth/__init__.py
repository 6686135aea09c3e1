"""auth/ -- Portal session gate for the AppSec Portal.

Login is a mock gate: a caller picks a portal (vendor, security, manager) and,
for the security portal, a team member. No passwords are involved.

Layer rule: auth/ imports only stdlib, third-party libraries and core/config.
It does NOT import from api/ or tracker/.
api/ imports from auth/, not the other way around.
"""
