# This file is part of pyiktree,  distributed under license LGPL v3

''' Kinematic structures handled by the solvers

	A `Skeleton` is an arena of `Joint`, each joint knowing its parent by index. Since a parent must exist before its children, a skeleton is always a forest.

	Every joint has a local transformation relative to its parent (its *reference*)

	- `translation`  position of the joint origin in the reference frame
	- `rotation`     orientation of the joint in the reference frame
	- `scaling`      uniform scale applied to the joint's children

	and a world pose derived from its ancestors, cached until a local transformation above changes.

	.. code::

		>>> skeleton = Skeleton()
		>>> root = skeleton.add()
		>>> elbow = skeleton.add(root, translation=vec3(0,10,0))
		>>> hand = skeleton.add(elbow, translation=vec3(0,10,0))
		>>> hand.position()
		dvec3( 0, 20, 0 )
'''

__all__ = ['Skeleton', 'Joint', 'Target']

from .mathutils import *


class Skeleton:
	''' Arena of joints, referencing each other by their index in `joints`

		Attributes:
			joints:   list of `Joint`, the index of a joint in this list is its identifier
	'''
	def __init__(self):
		self.joints = []
		self._children = []

	def add(self, parent=None, translation=None, rotation=None, scaling=1., constraint=None, name=None) -> 'Joint':
		''' Create a new joint, child of `parent` (a joint of this skeleton or its index), or a root if `parent` is None '''
		if parent is not None:
			parent = self.index(parent)
		joint = Joint(self, len(self.joints), parent,
				vec3(translation) if translation is not None else vec3(0),
				quat(rotation) if rotation is not None else quat(),
				scaling, constraint, name)
		self.joints.append(joint)
		self._children.append([])
		if parent is not None:
			self._children[parent].append(joint.index)
		return joint

	def branch(self, parent, translations, **kwargs) -> list:
		''' Create a sequence of joints, each child of the previous one, the first one child of `parent` '''
		joints = []
		for translation in translations:
			parent = self.add(parent, translation, **kwargs)
			joints.append(parent)
		return joints

	def index(self, joint) -> int:
		''' Index of a joint of this skeleton, given either the joint or its index '''
		if isinstance(joint, Joint):
			if joint.skeleton is not self:
				raise ValueError('joint {} does not belong to this skeleton'.format(joint))
			return joint.index
		if isinstance(joint, int) and 0 <= joint < len(self.joints):
			return joint
		raise ValueError('no joint {} in this skeleton'.format(joint))

	def __len__(self):
		return len(self.joints)

	def __iter__(self):
		return iter(self.joints)

	def __getitem__(self, index) -> 'Joint':
		return self.joints[index]

	def children(self, joint) -> list:
		''' Joints directly attached to the given joint '''
		return [self.joints[i] for i in self._children[self.index(joint)]]

	def roots(self) -> list:
		''' Joints with no reference '''
		return [joint for joint in self.joints if joint.parent is None]

	def depthfirst(self, start=None):
		''' Iterate over the joints below `start` (included) in depth first order, children in their creation order.
			If `start` is None, all the trees of the skeleton are iterated.
		'''
		if start is None:	stack = [joint.index for joint in reversed(self.roots())]
		else:				stack = [self.index(start)]
		while stack:
			index = stack.pop()
			yield self.joints[index]
			stack.extend(reversed(self._children[index]))

	def path(self, head, tail) -> list:
		''' Chain of joints from `head` to `tail`, `head` must be an ancestor of `tail` '''
		head, tail = self.index(head), self.index(tail)
		chain = []
		index = tail
		while index is not None:
			chain.append(self.joints[index])
			if index == head:
				chain.reverse()
				return chain
			index = self.joints[index].parent
		raise ValueError('joint {} is not an ancestor of joint {}'.format(head, tail))


class Joint:
	''' Node of a `Skeleton`

		Attributes:
			skeleton:    the arena owning this joint
			index:       identifier of this joint in the skeleton
			parent:      index of the reference joint, or None for a root
			constraint:  optional object implementing `constrain_rotation(delta, joint)` and `constrain_translation(delta, joint)`
			name:        optional label
	'''
	def __init__(self, skeleton, index, parent, translation, rotation, scaling, constraint, name):
		self.skeleton = skeleton
		self.index = index
		self.parent = parent
		self.constraint = constraint
		self.name = name
		self._translation = translation
		self._rotation = rotation
		self._scaling = scaling
		self._world = None

	def __repr__(self):
		if self.name:	return '<Joint {} {!r}>'.format(self.index, self.name)
		return '<Joint {}>'.format(self.index)

	@property
	def reference(self) -> 'Joint':
		''' parent joint, or None for a root '''
		if self.parent is None:	return None
		return self.skeleton.joints[self.parent]

	def children(self) -> list:
		return self.skeleton.children(self)

	@property
	def translation(self) -> vec3:
		return self._translation
	@translation.setter
	def translation(self, value):
		self._translation = vec3(value)
		self._invalidate()

	@property
	def rotation(self) -> quat:
		return self._rotation
	@rotation.setter
	def rotation(self, value):
		self._rotation = quat(value)
		self._invalidate()

	@property
	def scaling(self) -> float:
		return self._scaling
	@scaling.setter
	def scaling(self, value):
		self._scaling = value
		self._invalidate()

	def _invalidate(self):
		# a clean joint always has clean ancestors, so the propagation can stop on dirty joints
		stack = [self.index]
		joints = self.skeleton.joints
		children = self.skeleton._children
		while stack:
			joint = joints[stack.pop()]
			if joint._world is None and joint is not self:
				continue
			joint._world = None
			stack.extend(children[joint.index])

	def _pose(self) -> tuple:
		if self._world is None:
			dirty = []
			joint = self
			while joint is not None and joint._world is None:
				dirty.append(joint)
				joint = joint.reference
			for joint in reversed(dirty):
				reference = joint.reference
				if reference is None:
					joint._world = (vec3(joint._translation), quat(joint._rotation), joint._scaling)
				else:
					position, orientation, magnitude = reference._world
					joint._world = (
						position + orientation * (joint._translation * magnitude),
						orientation * joint._rotation,
						magnitude * joint._scaling,
						)
		return self._world

	def position(self) -> vec3:
		''' world position of the joint origin '''
		return self._pose()[0]

	def orientation(self) -> quat:
		''' world orientation of the joint '''
		return self._pose()[1]

	def magnitude(self) -> float:
		''' world scale of the joint '''
		return self._pose()[2]

	def set_rotation(self, rotation):
		''' Set the local rotation, through the constraint if any '''
		if self.constraint is not None:
			delta = self.constraint.constrain_rotation(inverse(self._rotation) * rotation, self)
			self.rotation = normalize(self._rotation * delta)
		else:
			self.rotation = rotation

	def rotate(self, delta):
		''' Compose the local rotation with `delta`, through the constraint if any '''
		if self.constraint is not None:
			delta = self.constraint.constrain_rotation(delta, self)
		self.rotation = normalize(self._rotation * delta)

	def translate(self, delta):
		''' Offset the local translation by `delta`, through the constraint if any '''
		if self.constraint is not None:
			delta = self.constraint.constrain_translation(delta, self)
		self.translation = self._translation + delta

	def location(self, point) -> vec3:
		''' Coordinates in this joint's frame of a world point '''
		position, orientation, magnitude = self._pose()
		return inverse(orientation) * (point - position) / magnitude

	def world_location(self, point) -> vec3:
		''' World coordinates of a point expressed in this joint's frame '''
		position, orientation, magnitude = self._pose()
		return position + orientation * (point * magnitude)

	def displacement(self, vector) -> vec3:
		''' Coordinates in this joint's frame of a world vector '''
		_, orientation, magnitude = self._pose()
		return inverse(orientation) * vector / magnitude

	def world_displacement(self, vector) -> vec3:
		''' World coordinates of a vector expressed in this joint's frame '''
		_, orientation, magnitude = self._pose()
		return orientation * (vector * magnitude)


class Target:
	''' Pose to reach, exposing the same `position()` and `orientation()` as a `Joint` '''
	def __init__(self, position=None, orientation=None):
		self._position = vec3(position) if position is not None else vec3(0)
		self._orientation = quat(orientation) if orientation is not None else quat()

	def __repr__(self):
		return 'Target({}, {})'.format(self._position, self._orientation)

	def position(self) -> vec3:
		return self._position

	def orientation(self) -> quat:
		return self._orientation

	def set(self, position=None, orientation=None):
		''' Move the target, the solvers using it will notice the change at their next tick '''
		if position is not None:	self._position = vec3(position)
		if orientation is not None:	self._orientation = quat(orientation)

	def move(self, offset):
		self._position = self._position + offset
