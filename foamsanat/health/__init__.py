from foamsanat.health.router import router


__all__ = ["router"]
