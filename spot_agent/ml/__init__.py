"""ML: nearest-neighbour direction classifier."""

from spot_agent.ml.knn import KnnParams, KnnResult, knn_buy_series, knn_series, tp_sl_label

__all__ = ["KnnParams", "KnnResult", "knn_buy_series", "knn_series", "tp_sl_label"]
