from .user import *
from .forum import *
from .blog import *
from .gallery import *
from .forms import *
from .constants import *
from .loggers import *
from .utils import *
