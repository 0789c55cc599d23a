# This file is part of pyiktree,  distributed under license LGPL v3

''' Group of functions and math classes of pyiktree

	Vectors and quaternions are the double precision types of `pyglm`, aliased as `vec3` and `quat`.
	Conventions follow glm:  `a*b` applies `b` first, `q*v` rotates `v` by `q`
'''

import glm
from glm import *
del version, license
import math
from math import pi, inf, nan, atan2, floor
max = __builtins__['max']
min = __builtins__['min']
abs = __builtins__['abs']
any = __builtins__['any']
all = __builtins__['all']
round = __builtins__['round']

# alias definitions
vec2 = dvec2
vec3 = dvec3
quat = dquat

# numerical precision of floats used
NUMPREC = 1e-13	# float64 here, so 14 decimals


# common base definition, for end user
O = vec3(0,0,0)
X = vec3(1,0,0)
Y = vec3(0,1,0)
Z = vec3(0,0,1)


def anglebt(x,y) -> float:
	''' Angle between two vectors

		The result is not sensitive to the lengths of x and y
	'''
	n = length(x)*length(y)
	return acos(min(1,max(-1, dot(x,y)/n)))	if n else 0

def project(vec, dir) -> vec3:
	''' Component of `vec` along `dir`, equivalent to :code:`dot(vec,dir) / dot(dir,dir) * dir`

		The result is not sensitive to the length of `dir`. A null `dir` gives a null vector
	'''
	d = dot(dir,dir)
	if not d:	return vec3(0)
	return dot(vec,dir) / d * dir

def noproject(vec, dir) -> vec3:
	''' Components of `vec` not along `dir`, equivalent to :code:`vec - project(vec,dir)`

		The result is not sensitive to the length of `dir`
	'''
	return vec - project(vec,dir)

def orthogonal(v) -> vec3:
	''' A vector orthogonal to `v`, of arbitrary length. Null if `v` is null '''
	a = glm.abs(v)
	if a.x <= a.y and a.x <= a.z:	return cross(v, X)
	elif a.y <= a.z:				return cross(v, Y)
	else:							return cross(v, Z)

def fromto(a, b) -> quat:
	''' Minimal rotation bringing direction `a` onto direction `b`

		Degenerated inputs (null vectors) give the identity rotation. Opposite directions give a half turn around an arbitrary orthogonal axis.
	'''
	la, lb = length(a), length(b)
	if not (la > NUMPREC and lb > NUMPREC):
		return quat()
	a, b = a/la, b/lb
	axis = cross(a, b)
	s = length(axis)
	c = dot(a, b)
	if s <= NUMPREC:
		if c > 0:	return quat()
		return angleAxis(pi, normalize(orthogonal(a)))
	return angleAxis(atan2(s, c), axis/s)

def qvec(q) -> vec3:
	''' Vector part of a quaternion '''
	return vec3(q.x, q.y, q.z)

def qangle(q) -> float:
	''' Unsigned rotation angle of a quaternion, in `[0, pi]` '''
	return 2*atan2(length(qvec(q)), abs(q.w))

def wrap(angle) -> float:
	''' Bring an angle into `(-pi, pi]` '''
	angle = math.fmod(angle, 2*pi)
	if angle > pi:		angle -= 2*pi
	elif angle <= -pi:	angle += 2*pi
	return angle

def twistangle(q, axis) -> float:
	''' Signed angle of the rotation component of `q` around `axis`, in `(-pi, pi]` '''
	l = length(axis)
	if not l > NUMPREC:	return 0.
	return wrap(2*atan2(dot(qvec(q), axis/l), q.w))

def swingtwist(q, axis) -> tuple:
	''' Decompose `q` into `(swing, twist)` such as `q == swing * twist`

		`twist` is a rotation around `axis`, `swing` a rotation around an axis orthogonal to `axis`.
		Degenerated cases (null axis, half turn swing) put everything in swing.
	'''
	p = project(qvec(q), axis)
	twist = quat(q.w, p.x, p.y, p.z)
	n = length(twist)
	if not n > NUMPREC:
		return quat(q), quat()
	twist = twist * (1/n)
	return q * inverse(twist), twist

def clampangle(angle, low, high) -> float:
	''' Clamp a signed angle to the window `[low, high]`.
		Out of the window, the bound the nearest on the circle is returned.
	'''
	if low <= angle <= high:	return angle
	above = (angle - high) % (2*pi)
	below = (low - angle) % (2*pi)
	return high if above <= below else low
