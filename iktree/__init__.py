# This file is part of pyiktree,  distributed under license LGPL v3

''' pyiktree is an inverse kinematics library, solving the rotations of chains and trees of joints so that end effectors reach their targets.

	Main classes:

		- `Skeleton`, `Joint`, `Target`   kinematic structures and poses to reach
		- `Hinge`, `BallAndSocket`, `PlanarPolygon`, `DistanceField`   constraints on the joints motion
		- `CCDSolver`, `ChainSolver`, `TreeSolver`   iterative solvers, ticked by the host with `solve()`

	Submodules:

		:mathutils:     vector and quaternion helpers, based on pyglm
		:frame:         joints and skeletons
		:constraints:   joint constraints
		:solver:        common solver lifecycle
		:ccd:           Cyclic Coordinate Descent
		:fabrik:        Forward And Backward Reaching Inverse Kinematics on chains
		:tree:          FABRIK on trees with several end effectors
		:settings:      default parameters and configuration file
'''

version = '0.1.0'

from .mathutils import vec3, quat, O, X, Y, Z
from .frame import Skeleton, Joint, Target
from .constraints import Constraint, Hinge, ConeConstraint, BallAndSocket, PlanarPolygon, DistanceField
from .solver import Solver, KinematicError
from .ccd import CCDSolver
from .fabrik import Properties, FABRIKSolver, ChainSolver
from .tree import TreeNode, TreeSolver
from . import settings
