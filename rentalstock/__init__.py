"""Equipment state and audit engine for a rental stock service.

The FastAPI application lives in ``rentalstock.main``; importing this
package alone does not build it, so the scheduler and tests can use the
services and models without the web layer.
"""
