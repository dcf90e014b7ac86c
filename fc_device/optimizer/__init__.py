from .SGDOptimizer import SGDOptimizer, sgd_update_

__all__ = [
    "SGDOptimizer",
    "sgd_update_",
]
