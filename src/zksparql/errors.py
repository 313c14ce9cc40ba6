"""
exception types raised by the compiler, the leaf store and the witness binder
"""


class ZkSparqlError(Exception):
    """base class for every error raised by zksparql"""


class UnsupportedQueryError(ZkSparqlError, ValueError):
    """query uses grammar outside the compilable subset"""


class UnsatisfiableQueryError(ZkSparqlError, ValueError):
    """optimized constraint is false, no dataset can satisfy the query"""


class InvariantViolation(ZkSparqlError, RuntimeError):
    """internal defect in the translator, optimizer or emitter"""


class WitnessBindingError(ZkSparqlError, ValueError):
    """a query solution cannot be aligned with the compiled input slots"""


class LeafStoreError(ZkSparqlError, RuntimeError):
    """hashing or signing failed while building the authenticated store"""


class OracleError(ZkSparqlError, RuntimeError):
    """an external process (nargo, node) failed or timed out"""
