r"""
This subpackage implements the linear algebra required for the
:class:`RLCMSolver`: a cluster tree over the input coordinates, a nested low
rank compression of the covariance matrix on that tree, and a recursive
factorization of the compressed matrix.

The cluster tree recursively splits the points with axis-aligned cuts until a
node holds no more than :math:`r` points (the *rank*) or a maximum depth is
reached. Ordering the points by leaf, every node :math:`i` owns a contiguous
block of rows and columns, and if :math:`j` and :math:`k` are its children,
the compressed covariance restricted to that block is

.. math::

    A_i = \left(\begin{array}{cc}
        A_j & F_j\,F_k^T \\
        F_k\,F_j^T & A_k
    \end{array}\right)

where a leaf block :math:`A_\ell = K_\lambda(X_\ell,\,X_\ell)` is evaluated
exactly. :math:`K_\lambda` is the kernel plus a nugget :math:`\lambda` where
two points coincide, so :math:`\lambda` lands on every diagonal element.

The off-diagonal factors come from :math:`r` *landmarks*
:math:`\bar{X}_i` sampled from the points of node :math:`i`. With
:math:`R_i\,R_i^T = K_\lambda(\bar{X}_i,\,\bar{X}_i)^{-1}`, a leaf child
:math:`c` has the Nystrom factor

.. math::

    F_c = K_\lambda(X_c,\,\bar{X}_i)\,R_i

while a nonleaf child reuses its own children's factors through a small
transfer matrix

.. math::

    F_c = \left(\begin{array}{c} F_{c_1} \\ F_{c_2} \end{array}\right)\,T_c
    \quad,\quad
    T_c = R_c^T\,K_\lambda(\bar{X}_c,\,\bar{X}_i)\,R_i

This nesting is what makes the compressed matrix positive definite for any
:math:`\lambda > 0`: every diagonal block is the sum of a positive
semi-definite Nystrom approximation and a positive definite remainder.

Since the coupling between two siblings has rank :math:`r`, each :math:`A_i`
is a rank :math:`2r` update of the block diagonal of its children, and both
the inverse and the determinant follow from the Sherman-Morrison-Woodbury
identity with the :math:`2r \times 2r` capacitance matrix

.. math::

    C_i = \left(\begin{array}{cc}
        F_j^T\,A_j^{-1}\,F_j & I \\
        I & F_k^T\,A_k^{-1}\,F_k
    \end{array}\right)

so that :math:`\log\det A_i = \log\det A_j + \log\det A_k + \log|\det C_i|`.
"""

__all__ = ["RLCMSolver"]

from rlcmgp.solvers.rlcm.solver import RLCMSolver
