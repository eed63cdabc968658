from valuation_api.core.middleware.ops_request import FAILOVER_HEADER, OpsRequestMiddleware

__all__ = ["FAILOVER_HEADER", "OpsRequestMiddleware"]
