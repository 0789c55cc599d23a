# This file is part of pyiktree,  distributed under license LGPL v3

''' FABRIK solver for trees of joints with several end effectors

	The tree below a root joint is cut into chains: each maximal run of joints with a single child is a chain, and every joint with several children (a *sub-base*) ends the chain it belongs to and starts one chain per child. Each chain is solved by a `ChainSolver`, wrapped in a `TreeNode`.

	An iteration goes in two passes over the tree

	- forward, from the leaves to the root: the end effector of a chain leading to a sub-base gets a goal, the weighted average of the positions its children chains desire for the sub-base. Chains far from their goal run their forward reaching.
	- backward, from the root to the leaves: chains that moved run their backward reaching, then each sub-base is rotated so that the centroid of its children's first joints follows their desired positions.
'''

__all__ = ['TreeNode', 'TreeSolver']

import logging
from .mathutils import *
from .fabrik import ChainSolver
from .solver import Solver, KinematicError, snapshot
from . import settings

logger = logging.getLogger(__name__)


class TreeNode:
	''' Chain of a tree decomposition

		Attributes:
			parent:    node whose chain ends on the head of this chain, or None
			children:  nodes whose chain starts on the end effector of this chain
			solver:    `ChainSolver` of this chain, used for its buffers and passes
			weight:    influence of this chain on the goal of its parent
			target:    user target of the end effector, or None
			goal:      position the end effector was driven to in the last forward pass, or None
			modified:  whether the chain ran its forward reaching in the last iteration
	'''
	def __init__(self, parent, solver, weight=1.):
		self.parent = parent
		self.children = []
		self.solver = solver
		self.weight = weight
		self.target = None
		self.goal = None
		self.modified = False
		if parent is not None:
			parent.children.append(self)

	def __repr__(self):
		return '<TreeNode {} to {}>'.format(self.chain[0], self.chain[-1])

	@property
	def chain(self) -> list:
		return self.solver.chain

	@property
	def shared(self) -> bool:
		''' whether the head of this chain is a sub-base shared with other chains '''
		return self.parent is not None and len(self.parent.children) > 1


class TreeSolver(Solver):
	''' FABRIK solver for the tree of joints below `root`

		Attributes:
			root_joint:       head of the tree
			root:             `TreeNode` of the chain starting at `root_joint`
			subbase_epsilon:  displacement of the children centroid under which a sub-base is not rotated
	'''
	def __init__(self, root, targets=None, subbase_epsilon=None, **kwargs):
		super().__init__(**kwargs)
		self.root_joint = root
		self.subbase_epsilon = subbase_epsilon if subbase_epsilon is not None else settings.solver['subbase_epsilon']
		self.rebuild()
		if targets:
			for end_effector, target in targets.items():
				self.set_target(end_effector, target)

	def __repr__(self):
		return '<TreeSolver {} chains>'.format(len(list(self.nodes())))

	def rebuild(self):
		''' Rebuild the tree decomposition from the current structure below the root joint. Targets are dropped '''
		self.root = self._build(None, [self.root_joint])
		self._previous = self._snapshots()
		self._head = vec3(self.root_joint.position())
		logger.debug('tree below %s cut in %d chains', self.root_joint, len(list(self.nodes())))

	def _build(self, parent, chain) -> TreeNode:
		joint = chain[-1]
		children = joint.children()
		while len(children) == 1:
			joint = children[0]
			chain.append(joint)
			children = joint.children()
		node = TreeNode(parent, ChainSolver(chain))
		for child in children:
			self._build(node, [joint, child])
		return node

	def nodes(self):
		''' Iterate the nodes in depth first order, parents before children '''
		stack = [self.root]
		while stack:
			node = stack.pop()
			yield node
			stack.extend(reversed(node.children))

	def node(self, end_effector) -> TreeNode:
		''' Node whose chain ends on the given joint '''
		for node in self.nodes():
			if node.chain[-1] is end_effector:
				return node
		raise KinematicError('{} is not an end effector of the tree below {}'.format(end_effector, self.root_joint))

	def set_target(self, end_effector, target):
		''' Set the target of an end effector, a joint ending a chain of the tree (leaf or sub-base) '''
		self.node(end_effector).target = target

	def set_weight(self, end_effector, weight):
		''' Set the influence of the chain ending on `end_effector` on the goal of its parent '''
		self.node(end_effector).weight = weight

	def targets(self) -> dict:
		return {node.chain[-1]: node.target  for node in self.nodes()  if node.target is not None}

	def residual(self) -> float:
		return sum(distance(node.chain[-1].position(), node.target.position())
				for node in self.nodes()  if node.target is not None)

	def joint_positions(self) -> list:
		return [vec3(joint.position()) for joint in self.root_joint.skeleton.depthfirst(self.root_joint)]

	def _forward(self, node) -> int:
		''' Forward pass below `node`, return the number of chains that ran their forward reaching '''
		count = 0
		for child in node.children:
			count += self._forward(child)
		active = [child for child in node.children if child.goal is not None]
		if active:
			# head positions desired by the children, or their current one if they did not move
			weights = [child.weight for child in active]
			if not sum(weights) > 0:
				weights = [1.] * len(active)
			goal = vec3(0)
			for weight, child in zip(weights, active):
				head = child.solver.positions[0] if child.modified else child.chain[0].position()
				goal = goal + head * weight
			node.goal = goal / sum(weights)
		elif node.target is not None:
			node.goal = vec3(node.target.position())
		else:
			node.goal = None
		node.modified = False
		if node.goal is None or distance(node.chain[-1].position(), node.goal) <= self.error:
			return count
		node.solver.reach_forward(node.goal)
		node.modified = True
		return count + 1

	def _backward(self, node) -> float:
		''' Backward pass below `node`, return the sum of the position changes '''
		change = 0.
		if node.modified:
			# a shared sub-base is only rotated by its reconciliation
			change += node.solver.reach_backward(1 if node.shared else 0)
		# also for unmodified nodes, their children may have moved
		if len(node.children) > 1:
			self._reconcile(node)
		for child in node.children:
			change += self._backward(child)
		return change

	def _reconcile(self, node):
		''' Rotate the sub-base ending `node` so that the centroid of its children's first joints moves toward their desired positions '''
		subbase = node.chain[-1]
		total = 0.
		before = vec3(0)
		after = vec3(0)
		for child in node.children:
			if child.goal is None or not child.solver.distances[1] > 0:
				continue
			actual = subbase.location(child.chain[1].position())
			desired = subbase.location(child.solver.positions[1]) if child.modified else actual
			before = before + actual * child.weight
			after = after + desired * child.weight
			total += child.weight
		if not total > 0:
			return
		before, after = before / total, after / total
		if distance(before, after) <= self.subbase_epsilon:
			return
		subbase.rotate(fromto(before, after))

	def _iterate(self) -> bool:
		count = self._forward(self.root)
		if count == 0:
			return True
		change = self._backward(self.root)
		return change / count <= self.min_distance

	def _update(self):
		# rotations are applied on the joints during the backward pass
		pass

	def _snapshots(self) -> list:
		return [snapshot(node.target) for node in self.nodes()]

	def _changed(self) -> bool:
		return self._snapshots() != self._previous or self.root_joint.position() != self._head

	def _reset(self):
		self._previous = self._snapshots()
		self._head = vec3(self.root_joint.position())
		for node in self.nodes():
			node.solver._reset()
			node.goal = None
			node.modified = False
