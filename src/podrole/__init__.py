"""podrole: lease-based leader election that labels the active pod.

Members of a coordination group contend for a Kubernetes Lease. The holder
labels its pod ``alpha.k8s.io/role-active=true``, everyone else labels
theirs ``false``, and each member exports an ``is_leader`` gauge.
"""

__version__ = "0.1.0"
