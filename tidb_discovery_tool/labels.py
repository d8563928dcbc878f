"""Recommended Kubernetes labels for operator-managed objects."""

from typing import Dict

NAME_LABEL_KEY = "app.kubernetes.io/name"
MANAGED_BY_LABEL_KEY = "app.kubernetes.io/managed-by"
INSTANCE_LABEL_KEY = "app.kubernetes.io/instance"
COMPONENT_LABEL_KEY = "app.kubernetes.io/component"

TIDB_CLUSTER_LABEL_VAL = "tidb-cluster"
DM_CLUSTER_LABEL_VAL = "dm-cluster"
TIDB_OPERATOR_LABEL_VAL = "tidb-operator"
DISCOVERY_LABEL_VAL = "discovery"
PD_LABEL_VAL = "pd"


class Label(dict):
    """Label set with chainable setters.

    >>> Label.new().instance("basic").discovery().labels()["app.kubernetes.io/component"]
    'discovery'
    """

    @classmethod
    def new(cls) -> "Label":
        return cls({
            NAME_LABEL_KEY: TIDB_CLUSTER_LABEL_VAL,
            MANAGED_BY_LABEL_KEY: TIDB_OPERATOR_LABEL_VAL,
        })

    @classmethod
    def new_dm(cls) -> "Label":
        return cls({
            NAME_LABEL_KEY: DM_CLUSTER_LABEL_VAL,
            MANAGED_BY_LABEL_KEY: TIDB_OPERATOR_LABEL_VAL,
        })

    def instance(self, name: str) -> "Label":
        self[INSTANCE_LABEL_KEY] = name
        return self

    def component(self, name: str) -> "Label":
        self[COMPONENT_LABEL_KEY] = name
        return self

    def discovery(self) -> "Label":
        return self.component(DISCOVERY_LABEL_VAL)

    def labels(self) -> Dict[str, str]:
        return dict(self)

    def label_selector(self) -> Dict[str, Dict[str, str]]:
        return {"matchLabels": self.labels()}
